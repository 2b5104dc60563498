from routers import auth, orders, products, stats, super_admin, upload, users

__all__ = ["auth", "orders", "products", "stats", "super_admin", "upload", "users"]
