from image_ingest.models.product import Product
from image_ingest.models.image import ProductImage, VARIANT_TAGS
from image_ingest.models.site_image import SiteImage

__all__ = ["Product", "ProductImage", "SiteImage", "VARIANT_TAGS"]
