import os
import re
import logging
from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from typing import List, Optional, Any
from datetime import datetime

from pymongo.errors import PyMongoError
from bson import ObjectId

import database
from auth import authenticate, require_admin, ensure_owner_or_admin
from orders import place_order, ProductNotFound, InsufficientInventory, PersistenceFailure
from repositories import (
    CategoryRepository,
    OrderRepository,
    ProductRepository,
    get_category_repository,
    get_order_repository,
    get_product_repository,
)
from schemas import (
    CategoryIn,
    CategoryOut,
    CategoryUpdate,
    OrderIn,
    OrderOut,
    OrderStatus,
    OrderStatusUpdate,
    ProductIn,
    ProductOut,
    UserOut,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Ecommerce API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err["loc"] if part != "body")
        messages.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return JSONResponse(status_code=400, content={"detail": "; ".join(messages)})


# ---------- Helpers ----------

def doc_to_dict(doc: dict) -> dict:
    out = {}
    for k, v in doc.items():
        if isinstance(v, ObjectId):
            out[k] = str(v)
        elif isinstance(v, datetime):
            out[k] = v.isoformat()
        else:
            out[k] = v
    if "_id" in out:
        out["id"] = out.pop("_id")
    return out


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


# ---------- Basic Routes ----------

@app.get("/")
def read_root():
    return {"message": "Ecommerce Backend Running"}


# ---------- Product Routes ----------

@app.get("/api/products", response_model=List[ProductOut])
def list_products(category: Optional[str] = None, limit: int = 50, products: ProductRepository = Depends(get_product_repository)) -> Any:
    try:
        docs = products.find_published(category=category, limit=limit)
    except PyMongoError as e:
        logger.error(f"Get products error: {e}")
        raise HTTPException(status_code=500, detail="Server error fetching products")
    return [ProductOut(**doc_to_dict(d)) for d in docs]


@app.get("/api/products/{product_id}", response_model=ProductOut)
def get_product(product_id: str, products: ProductRepository = Depends(get_product_repository)):
    try:
        doc = products.find_by_id(product_id)
    except PyMongoError as e:
        logger.error(f"Get product error: {e}")
        raise HTTPException(status_code=500, detail="Server error fetching product")
    if not doc:
        raise HTTPException(status_code=404, detail="Product not found")
    return ProductOut(**doc_to_dict(doc))


@app.post("/api/products", response_model=ProductOut, status_code=201)
def create_product(product: ProductIn, _: UserOut = Depends(require_admin), products: ProductRepository = Depends(get_product_repository)):
    try:
        saved = products.insert(product.model_dump())
    except PyMongoError as e:
        logger.error(f"Create product error: {e}")
        raise HTTPException(status_code=500, detail="Server error creating product")
    return ProductOut(**doc_to_dict(saved))


@app.put("/api/products/{product_id}", response_model=ProductOut)
def update_product(product_id: str, product: ProductIn, _: UserOut = Depends(require_admin), products: ProductRepository = Depends(get_product_repository)):
    # Only supplied fields are written; an omitted inventory keeps whatever orders left
    try:
        saved = products.save(product_id, product.model_dump(exclude_unset=True))
    except PyMongoError as e:
        logger.error(f"Update product error: {e}")
        raise HTTPException(status_code=500, detail="Server error updating product")
    if not saved:
        raise HTTPException(status_code=404, detail="Product not found")
    return ProductOut(**doc_to_dict(saved))


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, _: UserOut = Depends(require_admin), products: ProductRepository = Depends(get_product_repository)):
    try:
        deleted = products.delete(product_id)
    except PyMongoError as e:
        logger.error(f"Delete product error: {e}")
        raise HTTPException(status_code=500, detail="Server error deleting product")
    if not deleted:
        raise HTTPException(status_code=404, detail="Product not found")
    return {"message": "Product deleted successfully"}


# ---------- Category Routes ----------

@app.get("/api/categories", response_model=List[CategoryOut])
def list_categories(categories: CategoryRepository = Depends(get_category_repository)):
    try:
        docs = categories.find_active()
    except PyMongoError as e:
        logger.error(f"Get categories error: {e}")
        raise HTTPException(status_code=500, detail="Server error fetching categories")
    return [CategoryOut(**doc_to_dict(d)) for d in docs]


@app.get("/api/categories/{id_or_slug}", response_model=CategoryOut)
def get_category(id_or_slug: str, categories: CategoryRepository = Depends(get_category_repository)):
    try:
        doc = categories.find_by_id_or_slug(id_or_slug)
    except PyMongoError as e:
        logger.error(f"Get category error: {e}")
        raise HTTPException(status_code=500, detail="Server error fetching category")
    if not doc:
        raise HTTPException(status_code=404, detail="Category not found")
    return CategoryOut(**doc_to_dict(doc))


@app.post("/api/categories", response_model=CategoryOut, status_code=201)
def create_category(category: CategoryIn, _: UserOut = Depends(require_admin), categories: CategoryRepository = Depends(get_category_repository)):
    slug = slugify(category.name)
    try:
        if categories.slug_taken(slug):
            raise HTTPException(status_code=400, detail="Category with this name already exists")
        saved = categories.insert({**category.model_dump(), "slug": slug})
    except PyMongoError as e:
        logger.error(f"Create category error: {e}")
        raise HTTPException(status_code=500, detail="Server error creating category")
    return CategoryOut(**doc_to_dict(saved))


@app.put("/api/categories/{category_id}", response_model=CategoryOut)
def update_category(category_id: str, category: CategoryUpdate, _: UserOut = Depends(require_admin), categories: CategoryRepository = Depends(get_category_repository)):
    fields = category.model_dump(exclude_unset=True)
    if not category.name:
        fields.pop("name", None)
    if "parent" in fields:
        fields["parent"] = fields["parent"] or None

    try:
        if category.name:
            fields["slug"] = slugify(category.name)
            if categories.slug_taken(fields["slug"], exclude_id=category_id):
                raise HTTPException(status_code=400, detail="Category with this name already exists")
        updated = categories.update(category_id, fields)
    except PyMongoError as e:
        logger.error(f"Update category error: {e}")
        raise HTTPException(status_code=500, detail="Server error updating category")
    if not updated:
        raise HTTPException(status_code=404, detail="Category not found")
    return CategoryOut(**doc_to_dict(updated))


@app.delete("/api/categories/{category_id}")
def delete_category(
    category_id: str,
    _: UserOut = Depends(require_admin),
    categories: CategoryRepository = Depends(get_category_repository),
    products: ProductRepository = Depends(get_product_repository),
):
    try:
        if products.exists_in_category(category_id):
            raise HTTPException(status_code=400, detail="Cannot delete category that has products. Update or delete the products first.")
        if categories.has_children(category_id):
            raise HTTPException(status_code=400, detail="Cannot delete category that has subcategories. Delete or reassign the subcategories first.")
        deleted = categories.delete(category_id)
    except PyMongoError as e:
        logger.error(f"Delete category error: {e}")
        raise HTTPException(status_code=500, detail="Server error deleting category")
    if not deleted:
        raise HTTPException(status_code=404, detail="Category not found")
    return {"message": "Category deleted successfully"}


# ---------- Order Routes ----------

@app.post("/api/orders", response_model=OrderOut, status_code=201)
def create_order(
    order: OrderIn,
    user: UserOut = Depends(authenticate),
    products: ProductRepository = Depends(get_product_repository),
    orders: OrderRepository = Depends(get_order_repository),
):
    try:
        saved = place_order(products, orders, user.id, order)
    except (ProductNotFound, InsufficientInventory) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PersistenceFailure as e:
        raise HTTPException(status_code=500, detail=str(e))
    return OrderOut(**doc_to_dict(saved))


@app.get("/api/orders/my-orders", response_model=List[OrderOut])
def list_my_orders(limit: int = 50, user: UserOut = Depends(authenticate), orders: OrderRepository = Depends(get_order_repository)):
    try:
        docs = orders.find_by_user(user.id, limit=limit)
    except PyMongoError as e:
        logger.error(f"Get user orders error: {e}")
        raise HTTPException(status_code=500, detail="Server error fetching orders")
    return [OrderOut(**doc_to_dict(d)) for d in docs]


@app.get("/api/orders/{order_id}", response_model=OrderOut)
def get_order(order_id: str, user: UserOut = Depends(authenticate), orders: OrderRepository = Depends(get_order_repository)):
    try:
        doc = orders.find_by_id(order_id)
    except PyMongoError as e:
        logger.error(f"Get order error: {e}")
        raise HTTPException(status_code=500, detail="Server error fetching order")
    if not doc:
        raise HTTPException(status_code=404, detail="Order not found")
    ensure_owner_or_admin(doc, user)
    return OrderOut(**doc_to_dict(doc))


@app.get("/api/orders", response_model=List[OrderOut])
def list_orders(status: Optional[OrderStatus] = None, limit: int = 50, _: UserOut = Depends(require_admin), orders: OrderRepository = Depends(get_order_repository)):
    try:
        docs = orders.find_all(status=status, limit=limit)
    except PyMongoError as e:
        logger.error(f"Get all orders error: {e}")
        raise HTTPException(status_code=500, detail="Server error fetching orders")
    return [OrderOut(**doc_to_dict(d)) for d in docs]


@app.patch("/api/orders/{order_id}/status", response_model=OrderOut)
def update_order_status(order_id: str, update: OrderStatusUpdate, _: UserOut = Depends(require_admin), orders: OrderRepository = Depends(get_order_repository)):
    try:
        doc = orders.update_status(order_id, update.status, update.tracking_number)
    except PyMongoError as e:
        logger.error(f"Update order status error: {e}")
        raise HTTPException(status_code=500, detail="Server error updating order status")
    if not doc:
        raise HTTPException(status_code=404, detail="Order not found")
    return OrderOut(**doc_to_dict(doc))


# ---------- Diagnostics ----------

@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "collections": [],
    }

    if database.db is not None:
        try:
            response["collections"] = database.db.list_collection_names()[:10]
            response["database"] = "✅ Connected & Working"
        except PyMongoError as e:
            response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"

    response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
    response["database_name"] = "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set"
    response["jwt_secret"] = "✅ Set" if os.getenv("JWT_SECRET") else "⚠️  Using default"

    return response


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
