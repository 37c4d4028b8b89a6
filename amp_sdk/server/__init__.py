from .ingestion_stub import create_app
