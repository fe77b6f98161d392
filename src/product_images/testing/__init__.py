"""Testing utilities and fakes for product image operations."""

from .fakes import (
    FakeProductApi,
    FakeProduct,
    FakeVariant,
    FakeLogger,
    create_test_image,
    create_test_archive,
    setup_test_catalog,
)

__all__ = [
    "FakeProductApi",
    "FakeProduct",
    "FakeVariant",
    "FakeLogger",
    "create_test_image",
    "create_test_archive",
    "setup_test_catalog",
]
