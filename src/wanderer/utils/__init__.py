from .atomic import atomic_json_dump

__all__ = ["atomic_json_dump"]
