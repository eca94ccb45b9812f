"""
Discounts module

- Discount: named percentage; at most one is global and seeds the discount of
  every new POS order
- Coupon: code the cashier applies to an order (percentage or fixed amount,
  optionally restricted to some products)
"""
