from .binding import CollectionBinding, Error, Loading, Ready, ViewState, WriteStrategy

__all__ = ["CollectionBinding", "Error", "Loading", "Ready", "ViewState", "WriteStrategy"]
