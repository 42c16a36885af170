import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import brands
import carts
import categories
import config
import orders
import products
import users
import wishlists
from database import db
from schemas import (
    AdminUserUpdate, BrandCreate, BrandUpdate, CartItemInput, CartItemKey, CartQuantityUpdate, CategoryCreate,
    CategoryUpdate, CommentInput, DirectOrderInput, LoginInput, OrderFromCartInput, OrderStatusUpdate,
    PaymentStatusUpdate, ProductCreate, ProductUpdate, RatingInput, RegisterInput, UnlockRequest, UsernameChange,
    UserUpdate, WishlistCreate, WishlistProduct,
)
from security import ensure_self_or_admin, get_current_user, require_admin

config.setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Shoe Store API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def unhandled_exception(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


# Routes
@app.get("/")
def read_root():
    return {"message": "Welcome to the Shoe Store API"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["connection_status"] = "Connected"
            response["database_url"] = "✅ Set" if config.DATABASE_URL else "❌ Not Set"
            response["database_name"] = db.name
            response["collections"] = db.list_collection_names()
    except Exception as e:
        logger.warning("Database check failed: %s", e)
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# Users
@app.post("/api/users/register", status_code=201)
def register(payload: RegisterInput):
    return users.register_user(payload)


@app.post("/api/users/login")
def login(payload: LoginInput):
    return users.login_user(payload.email, payload.password)


@app.get("/api/users/me")
def me(current_user: dict = Depends(get_current_user)):
    return current_user


@app.get("/api/users")
def list_users(admin: dict = Depends(require_admin)):
    return users.list_users()


@app.get("/api/users/{user_id}")
def get_user(user_id: str, current_user: dict = Depends(get_current_user)):
    return users.get_user(user_id)


@app.patch("/api/users/admin/{user_id}")
def admin_update_user(user_id: str, payload: AdminUserUpdate, admin: dict = Depends(require_admin)):
    return users.admin_update_user(user_id, payload, admin["id"])


@app.patch("/api/users/{user_id}/username")
def change_username(user_id: str, payload: UsernameChange, admin: dict = Depends(require_admin)):
    return users.admin_change_username(user_id, payload.new_username, admin["id"], payload.reason)


@app.post("/api/users/{user_id}/unlock")
def unlock_user(user_id: str, payload: Optional[UnlockRequest] = None, admin: dict = Depends(require_admin)):
    user = users.unlock_user_account(user_id, admin["id"], payload.reason if payload else None)
    return {"message": "User account unlocked successfully.", "user": user}


@app.patch("/api/users/{user_id}")
def update_user(user_id: str, payload: UserUpdate, current_user: dict = Depends(get_current_user)):
    if current_user["id"] != user_id:
        raise HTTPException(status_code=403, detail="You can only update your own profile")
    return users.update_user(user_id, payload)


@app.delete("/api/users/{user_id}")
def delete_user(user_id: str, admin: dict = Depends(require_admin)):
    users.delete_user(user_id, admin["id"])
    return {"message": "User deleted successfully"}


# Products
@app.post("/api/products", status_code=201)
def create_product(payload: ProductCreate, admin: dict = Depends(require_admin)):
    return products.create_product(payload)


@app.get("/api/products")
def list_products():
    return products.list_products()


@app.get("/api/products/search")
def search_products(q: str = ""):
    return products.search_products(q)


@app.get("/api/products/new-arrivals")
def new_arrivals():
    return products.new_arrivals()


@app.get("/api/products/on-sale")
def on_sale():
    return products.on_sale()


@app.get("/api/products/exclusive")
def exclusive():
    return products.exclusive()


@app.get("/api/products/coming-soon")
def coming_soon():
    return products.coming_soon()


@app.get("/api/products/category/{category_id}")
def products_by_category(category_id: str):
    return products.products_by_category(category_id)


@app.get("/api/products/brand/{brand_id}")
def products_by_brand(brand_id: str):
    return products.products_by_brand(brand_id)


@app.get("/api/products/{product_id}")
def get_product(product_id: str):
    return products.get_product(product_id)


@app.get("/api/products/{product_id}/recommendations")
def recommendations(product_id: str):
    return products.recommendations(product_id)


@app.put("/api/products/{product_id}")
def update_product(product_id: str, payload: ProductUpdate, admin: dict = Depends(require_admin)):
    return products.update_product(product_id, payload)


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, admin: dict = Depends(require_admin)):
    products.delete_product(product_id)
    return {"message": "Product deleted successfully"}


@app.post("/api/products/{product_id}/ratings")
def rate_product(product_id: str, payload: RatingInput, current_user: dict = Depends(get_current_user)):
    return products.add_rating(product_id, current_user["id"], payload.rating, payload.comment)


@app.get("/api/products/{product_id}/ratings")
def product_ratings(product_id: str):
    return products.get_ratings(product_id)


@app.post("/api/products/{product_id}/comments")
def comment_product(product_id: str, payload: CommentInput, current_user: dict = Depends(get_current_user)):
    return products.add_comment(product_id, current_user["id"], payload.text)


@app.get("/api/products/{product_id}/comments")
def product_comments(product_id: str):
    return products.get_comments(product_id)


# Categories
@app.post("/api/categories", status_code=201)
def create_category(payload: CategoryCreate, admin: dict = Depends(require_admin)):
    return categories.create_category(payload)


@app.get("/api/categories")
def list_categories():
    return categories.list_categories()


@app.get("/api/categories/main")
def main_categories():
    return categories.list_main_categories()


@app.get("/api/categories/name/{name}")
def category_by_name(name: str):
    return categories.get_category_by_name(name)


@app.get("/api/categories/slug/{slug}")
def category_by_slug(slug: str):
    return categories.get_category_by_slug(slug)


@app.get("/api/categories/{category_id}")
def get_category(category_id: str):
    return categories.get_category(category_id)


@app.get("/api/categories/{category_id}/subcategories")
def subcategories(category_id: str):
    return categories.list_subcategories(category_id)


@app.put("/api/categories/{category_id}")
def update_category(category_id: str, payload: CategoryUpdate, admin: dict = Depends(require_admin)):
    return categories.update_category(category_id, payload)


@app.delete("/api/categories/{category_id}")
def delete_category(category_id: str, admin: dict = Depends(require_admin)):
    categories.delete_category(category_id)
    return {"message": "Category deleted successfully"}


# Brands
@app.post("/api/brands", status_code=201)
def create_brand(payload: BrandCreate, admin: dict = Depends(require_admin)):
    return brands.create_brand(payload)


@app.get("/api/brands")
def list_brands():
    return brands.list_brands()


@app.get("/api/brands/name/{name}")
def brand_by_name(name: str):
    return brands.get_brand_by_name(name)


@app.get("/api/brands/{brand_id}")
def get_brand(brand_id: str):
    return brands.get_brand(brand_id)


@app.put("/api/brands/{brand_id}")
def update_brand(brand_id: str, payload: BrandUpdate, admin: dict = Depends(require_admin)):
    return brands.update_brand(brand_id, payload)


@app.delete("/api/brands/{brand_id}")
def delete_brand(brand_id: str, admin: dict = Depends(require_admin)):
    brands.delete_brand(brand_id)
    return {"message": "Brand deleted successfully"}


# Cart
@app.get("/api/carts")
def get_cart(current_user: dict = Depends(get_current_user)):
    return carts.present_cart(carts.get_or_create_cart(current_user["id"]))


@app.post("/api/carts/items")
def add_to_cart(payload: CartItemInput, current_user: dict = Depends(get_current_user)):
    return carts.add_item(current_user["id"], payload)


@app.put("/api/carts/items")
def update_cart_item(payload: CartQuantityUpdate, current_user: dict = Depends(get_current_user)):
    return carts.update_item_quantity(current_user["id"], payload)


@app.delete("/api/carts/items")
def remove_cart_item(payload: CartItemKey, current_user: dict = Depends(get_current_user)):
    return carts.remove_item(current_user["id"], payload)


@app.delete("/api/carts")
def clear_cart(current_user: dict = Depends(get_current_user)):
    return carts.clear_cart(current_user["id"])


# Orders
@app.post("/api/orders/from-cart", status_code=201)
def order_from_cart(payload: OrderFromCartInput, current_user: dict = Depends(get_current_user)):
    return orders.create_order_from_cart(current_user["id"], payload)


@app.post("/api/orders/direct", status_code=201)
def direct_order(payload: DirectOrderInput, current_user: dict = Depends(get_current_user)):
    return orders.create_direct_order(current_user["id"], payload)


@app.get("/api/orders/my-orders")
def my_orders(current_user: dict = Depends(get_current_user)):
    return orders.list_orders_for_user(current_user["id"])


@app.get("/api/orders")
def all_orders(admin: dict = Depends(require_admin)):
    return orders.list_all_orders()


@app.get("/api/orders/user/{user_id}")
def orders_for_user(user_id: str, current_user: dict = Depends(get_current_user)):
    ensure_self_or_admin(current_user, user_id, detail="Not authorized to view these orders")
    return orders.list_orders_for_user(user_id)


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, current_user: dict = Depends(get_current_user)):
    order = orders.get_order(order_id)
    ensure_self_or_admin(current_user, order["user_id"], detail="Not authorized to view this order")
    return order


@app.patch("/api/orders/{order_id}/payment-status")
def payment_status(order_id: str, payload: PaymentStatusUpdate, admin: dict = Depends(require_admin)):
    return orders.update_payment_status(order_id, payload.new_payment_status)


@app.patch("/api/orders/{order_id}/status")
def order_status(order_id: str, payload: OrderStatusUpdate, admin: dict = Depends(require_admin)):
    return orders.update_order_status(order_id, payload.new_status)


@app.delete("/api/orders/{order_id}")
def delete_order(order_id: str, admin: dict = Depends(require_admin)):
    orders.delete_order(order_id)
    return {"message": "Order deleted successfully and stock reverted."}


# Wishlists
@app.get("/api/wishlists/{user_id}")
def get_wishlist(user_id: str, current_user: dict = Depends(get_current_user)):
    ensure_self_or_admin(current_user, user_id)
    return wishlists.get_wishlist(user_id)


@app.post("/api/wishlists/{user_id}", status_code=201)
def create_wishlist(user_id: str, payload: Optional[WishlistCreate] = None,
                    current_user: dict = Depends(get_current_user)):
    ensure_self_or_admin(current_user, user_id)
    return wishlists.get_or_create_wishlist(user_id, payload.product_ids if payload else [])


@app.post("/api/wishlists/{user_id}/add")
def add_to_wishlist(user_id: str, payload: WishlistProduct, current_user: dict = Depends(get_current_user)):
    ensure_self_or_admin(current_user, user_id)
    return wishlists.add_product(user_id, payload.product_id)


@app.delete("/api/wishlists/{user_id}/remove")
def remove_from_wishlist(user_id: str, payload: WishlistProduct, current_user: dict = Depends(get_current_user)):
    ensure_self_or_admin(current_user, user_id)
    return wishlists.remove_product(user_id, payload.product_id)


@app.delete("/api/wishlists/{user_id}")
def delete_wishlist(user_id: str, admin: dict = Depends(require_admin)):
    return wishlists.delete_wishlist(user_id)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
