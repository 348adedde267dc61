from storefront.services.notifications.dispatcher import NotificationDispatcher

__all__ = ["NotificationDispatcher"]
