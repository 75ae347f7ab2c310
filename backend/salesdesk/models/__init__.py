from .inventory import Product
from .customers import Customer
from .sales import Sale, SaleImage, SALE_IMAGE_TYPES
from .auth import User, RefreshToken, USER_ROLES

__all__ = [
    'Product',
    'Customer',
    'Sale', 'SaleImage', 'SALE_IMAGE_TYPES',
    'User', 'RefreshToken', 'USER_ROLES',
]
