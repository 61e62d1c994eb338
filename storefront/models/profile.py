"""Type definitions for data stored on the profiles table."""

# Shape of profiles.cart_data: product_id -> color -> quantity
CartData = dict[str, dict[str, int]]
