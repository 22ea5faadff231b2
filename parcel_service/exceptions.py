class ParcelServiceError(Exception):
    pass


class InvalidCheckoutRequest(ParcelServiceError):
    """Checkout input rejected before the provider is contacted."""


class ProviderError(ParcelServiceError):
    pass


class PaymentInitiationError(ProviderError):
    """The provider refused to open a checkout session."""


class InvalidSessionError(ParcelServiceError):
    """A paid checkout session is missing the data needed to reconcile it."""


class StoreError(ParcelServiceError):
    pass


class ParcelNotFound(StoreError):
    def __init__(self, parcel_id):
        super().__init__(f"Parcel {parcel_id} not found")
        self.parcel_id = parcel_id


class DuplicateTransaction(StoreError):
    def __init__(self, transaction_id):
        super().__init__(f"Payment {transaction_id} already recorded")
        self.transaction_id = transaction_id


class TrackingIdCollision(StoreError):
    def __init__(self, tracking_id):
        super().__init__(f"Tracking id {tracking_id} already assigned")
        self.tracking_id = tracking_id
