from .crypto import generate_signature, verify_signature

__all__ = ["generate_signature", "verify_signature"]
