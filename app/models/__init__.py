from app.models.company import Company, CompanyLocation, ShopifyWebhookSecret
from app.models.user import User
from app.models.customer import Customer
from app.models.catalog import Category, ProductItem, Vendor
from app.models.fulfillment_settings import (
    CourierService,
    OrderSampleFreeIssue,
    PackageHoldReason,
    SampleFreeIssueItem,
)
from app.models.order import Order, OrderLineItem
from app.models.order_remark import OrderRemark
from app.models.failed_order_webhook import FailedOrderWebhook
from app.models.sms import SmsLog, SmsNotificationConfig, SmsPortalConfig
