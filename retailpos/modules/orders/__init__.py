"""
POS orders module

MAIN ENTITIES:
- Order: in-progress bill of one cashier session (cart, customer, order type,
  charges, discount, coupon, payment details, checkout state)
- CompletedOrder: persisted snapshot handed over at checkout completion
- SessionState: serialized order set of a session

FEATURES:
- Several tabs per session ("Live Bill" plus "Table N"), one active at a time
- Stock reserved per cart unit, released on removal or tab deletion
- Deterministic totals (coupon, percentage discount, table/delivery charge,
  card surcharge)
- Checkout: building -> checkout_open -> payment_pending -> completed

BUSINESS RULES:
- The default tab always exists and cannot be deleted or reordered
- A cart line never holds more units than the counter had when reserved
- Only the charge of the current order type counts
- Cash must cover the total; card needs invoice id and issuer
- Completion writes one sale ledger entry per line, once per order id

INTEGRATION:
- Inventory: reservations and sale entries through InventoryService
- Discounts: global discount seeds new tabs, coupons looked up by code
- Products: catalog snapshot and barcode lookup
"""
