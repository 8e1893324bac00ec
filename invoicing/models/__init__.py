from invoicing.business.billing.models import Invoice, InvoiceLine, InvoiceSequence
from invoicing.business.catalog.models import CatalogProduct
from invoicing.business.coupons.models import Coupon, CouponUsage
from invoicing.business.payments.models import InvoicePayment

__all__ = [
	"CatalogProduct",
	"Coupon",
	"CouponUsage",
	"Invoice",
	"InvoiceLine",
	"InvoicePayment",
	"InvoiceSequence",
]
