"""Storefront backend: checkout, order conversion, payments and webhooks."""
