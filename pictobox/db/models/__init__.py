from pictobox.db.models.category import Category
from pictobox.db.models.custom_pictogram import CustomPictogram
from pictobox.db.models.item import IMAGE_TYPES, ImageType, Item

__all__ = ["Category", "CustomPictogram", "IMAGE_TYPES", "ImageType", "Item"]
