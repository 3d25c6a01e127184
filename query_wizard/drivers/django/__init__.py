from .driver import DjangoDriver

__all__ = ["DjangoDriver"]
