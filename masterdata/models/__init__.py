from .customer import Customer
from .vendor import Vendor
from .product import Product
