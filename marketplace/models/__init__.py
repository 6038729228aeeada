from marketplace.models.user import User, Referral
from marketplace.models.business import (
    Company, CompanyBranch, Wholesaler, WholesalerBranch, ServiceProvider,
)
from marketplace.models.sponsorship import (
    Sponsorship, SponsorshipSubscriptionRequest, SponsorshipSubscription,
)
from marketplace.models.wallet import AdminWalletTransaction, AdminWalletBalance
from marketplace.models.voucher import Voucher, VoucherPurchase

__all__ = [
    "User", "Referral",
    "Company", "CompanyBranch", "Wholesaler", "WholesalerBranch", "ServiceProvider",
    "Sponsorship", "SponsorshipSubscriptionRequest", "SponsorshipSubscription",
    "AdminWalletTransaction", "AdminWalletBalance",
    "Voucher", "VoucherPurchase",
]
