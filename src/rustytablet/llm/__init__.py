from .router import PROVIDER_TYPES, generate_text

__all__ = ["PROVIDER_TYPES", "generate_text"]
