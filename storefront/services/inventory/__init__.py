from storefront.services.inventory.ledger import InventoryLedger

__all__ = ["InventoryLedger"]
