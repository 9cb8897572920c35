from .sales import SalesOrder, SalesOrderLine
from .purchase import PurchaseOrder, PurchaseOrderLine
