"""Platform defaults for event channel policies."""

from messaging.shared.enums import Channel

# Used whenever an event has no active policy.
DEFAULT_CHANNELS = frozenset({Channel.PUSH, Channel.EMAIL, Channel.IN_APP})

# Known business events seeded by InitializeDefaultPolicies.
DEFAULT_EVENT_POLICIES = {
    "user.registered": {
        "display_name": "Welcome",
        "description": "Sent once a customer account has been created",
        "channels": [Channel.EMAIL, Channel.IN_APP],
    },
    "order.created": {
        "display_name": "Order placed",
        "description": "Confirmation that an order was received",
        "channels": [Channel.EMAIL, Channel.IN_APP, Channel.PUSH],
    },
    "order.paid": {
        "display_name": "Payment received",
        "description": "Payment for an order was captured",
        "channels": [Channel.EMAIL, Channel.IN_APP],
    },
    "order.shipped": {
        "display_name": "Order shipped",
        "description": "An order left the warehouse",
        "channels": [Channel.PUSH, Channel.SMS, Channel.IN_APP],
    },
    "order.delivered": {
        "display_name": "Order delivered",
        "description": "The carrier confirmed delivery",
        "channels": [Channel.PUSH, Channel.IN_APP],
    },
    "order.cancelled": {
        "display_name": "Order cancelled",
        "description": "An order was cancelled by the customer or the store",
        "channels": [Channel.EMAIL, Channel.IN_APP, Channel.PUSH],
    },
    "payment.failed": {
        "display_name": "Payment failed",
        "description": "A payment attempt was declined",
        "channels": [Channel.EMAIL, Channel.IN_APP, Channel.PUSH],
    },
    "product.back_in_stock": {
        "display_name": "Back in stock",
        "description": "A watched product is available again",
        "channels": [Channel.PUSH, Channel.EMAIL],
    },
    "promotion.announced": {
        "display_name": "Promotion",
        "description": "Marketing campaigns and coupons",
        "channels": [Channel.PUSH, Channel.EMAIL],
    },
    "system.announcement": {
        "display_name": "System announcement",
        "description": "Maintenance windows and platform news",
        "channels": [Channel.IN_APP, Channel.TELEGRAM],
    },
}
