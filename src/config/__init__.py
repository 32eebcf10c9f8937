from src.config.config import Config

__all__ = ["Config"]
