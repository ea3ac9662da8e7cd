from .similar_items import SimilarItem, similar_items

__all__ = ["SimilarItem", "similar_items"]
