"""Storefront backend - Google sign-in and Razorpay payment brokering."""
