import base64
import binascii
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple

from fastapi import FastAPI, HTTPException, Depends, Header, Query, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from database import MemStorage, Storage, get_db
from schemas import (
    CartItem,
    CartItemCreate,
    CartItemWithProduct,
    CartQuantityUpdate,
    Product,
    ProductUpdate,
    Review,
    ReviewApproval,
    ReviewCreate,
)

# Config
ADMIN_USERNAME = os.getenv("ADMIN_USERNAME", "admin")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin123")
REVIEWS_AUTO_APPROVE = os.getenv("REVIEWS_AUTO_APPROVE", "true").lower() in ("1", "true", "yes")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def create_storage() -> Storage:
    return MemStorage(
        admin_username=ADMIN_USERNAME,
        admin_password=ADMIN_PASSWORD,
        auto_approve_reviews=REVIEWS_AUTO_APPROVE,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    app.state.db = create_storage()
    yield


app = FastAPI(title="Flaze Store API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error handlers

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid request data", "errors": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# Admin auth (HTTP Basic, plaintext credentials)

def decode_basic_credentials(token: str) -> Tuple[str, str]:
    decoded = base64.b64decode(token, validate=True).decode("utf-8")
    username, _, password = decoded.partition(":")
    return username, password


def require_admin(authorization: Optional[str] = Header(default=None), db: Storage = Depends(get_db)) -> str:
    if not authorization or not authorization.startswith("Basic "):
        raise HTTPException(status_code=401, detail="Unauthorized: Admin access required")
    try:
        username, password = decode_basic_credentials(authorization.split(" ", 1)[1])
    except (binascii.Error, UnicodeDecodeError):
        logger.exception("Could not decode Basic credentials")
        raise HTTPException(status_code=500, detail="Authentication error")
    if not db.verify_admin(username, password):
        logger.warning("Admin access denied for %r", username)
        raise HTTPException(status_code=403, detail="Forbidden: Admin access required")
    return username


# Routes
@app.get("/")
def read_root():
    return {"message": "Flaze Store API"}


@app.get("/test")
def test_storage(db: Storage = Depends(get_db)):
    response: Dict[str, Any] = {
        "backend": "✅ Running",
        "database": "✅ Available",
        "database_type": type(db).__name__,
        "collections": {},
    }
    try:
        response["collections"] = db.stats()
    except Exception as e:
        logger.exception("Storage status check failed")
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# Products
@app.get("/api/products", response_model=List[Product])
def list_products(db: Storage = Depends(get_db)):
    return db.list_products()


@app.get("/api/products/featured", response_model=List[Product])
def list_featured_products(db: Storage = Depends(get_db)):
    return db.list_featured_products()


@app.get("/api/products/{product_id}", response_model=Product)
def get_product(product_id: int, db: Storage = Depends(get_db)):
    product = db.get_product(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


# Cart
@app.get("/api/cart", response_model=List[CartItemWithProduct])
def get_cart(user_id: Optional[int] = Query(default=None), db: Storage = Depends(get_db)):
    products = {p.id: p for p in db.list_products()}
    return [
        CartItemWithProduct(**item.model_dump(), product=products.get(item.product_id))
        for item in db.list_cart_items(user_id)
    ]


@app.post("/api/cart", response_model=CartItem, status_code=201)
def add_to_cart(item: CartItemCreate, db: Storage = Depends(get_db)):
    return db.add_to_cart(item)


@app.patch("/api/cart/{item_id}", response_model=CartItem)
def update_cart_item(item_id: int, data: CartQuantityUpdate, db: Storage = Depends(get_db)):
    item = db.update_cart_item_quantity(item_id, data.quantity)
    if not item:
        raise HTTPException(status_code=404, detail="Cart item not found")
    return item


@app.delete("/api/cart/{item_id}", status_code=204)
def remove_from_cart(item_id: int, db: Storage = Depends(get_db)):
    if not db.remove_from_cart(item_id):
        raise HTTPException(status_code=404, detail="Cart item not found")
    return Response(status_code=204)


@app.delete("/api/cart", status_code=204)
def clear_cart(user_id: Optional[int] = Query(default=None), db: Storage = Depends(get_db)):
    db.clear_cart(user_id)
    return Response(status_code=204)


# Reviews
@app.get("/api/reviews", response_model=List[Review])
def list_reviews(db: Storage = Depends(get_db)):
    return db.list_approved_reviews()


@app.post("/api/reviews", response_model=Review, status_code=201)
def create_review(review: ReviewCreate, db: Storage = Depends(get_db)):
    return db.create_review(review)


# Admin
@app.get("/api/admin/reviews", response_model=List[Review])
def admin_list_reviews(admin: str = Depends(require_admin), db: Storage = Depends(get_db)):
    return db.list_all_reviews()


@app.patch("/api/admin/reviews/{review_id}", response_model=Review)
def admin_update_review(review_id: int, data: ReviewApproval, admin: str = Depends(require_admin), db: Storage = Depends(get_db)):
    review = db.update_review(review_id, data.approved)
    if not review:
        raise HTTPException(status_code=404, detail="Review not found")
    return review


@app.delete("/api/admin/reviews/{review_id}", status_code=204)
def admin_delete_review(review_id: int, admin: str = Depends(require_admin), db: Storage = Depends(get_db)):
    if not db.delete_review(review_id):
        raise HTTPException(status_code=404, detail="Review not found")
    return Response(status_code=204)


@app.patch("/api/admin/products/{product_id}", response_model=Product)
def admin_update_product(product_id: int, data: ProductUpdate, admin: str = Depends(require_admin), db: Storage = Depends(get_db)):
    # exclude_unset keeps "badge": null (clear) apart from an omitted badge
    update_dict = data.model_dump(exclude_unset=True)
    product = db.update_product(product_id, update_dict)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    logger.info("Admin %r updated product %d: %s", admin, product_id, sorted(update_dict))
    return product


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
