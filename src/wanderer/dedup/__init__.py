from .gate import DedupGate

__all__ = ["DedupGate"]
