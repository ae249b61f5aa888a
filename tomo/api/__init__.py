"""HTTP surface: FastAPI application factory and resource routers."""
