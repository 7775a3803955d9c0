"""Payload transform and validation tests."""

import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from hwtracker.items import Category, Item, ScrapingResult
from hwtracker.mcp_transformer import (
    build_metadata,
    create_data_description,
    transform_scraping_result,
    validate_mcp_data,
)


def _result():
    return ScrapingResult(
        products=[
            Item("Radeon 7700XT", 599.99, "https://a.example/p/1", "Alternate", Category.GPU),
            Item("Ryzen 7 7800X3D", 389.0, "https://c.example/p/2", "Coolblue", Category.CPU),
            Item("GeForce 5080", 1199.0, "https://a.example/p/3", "Alternate", Category.GPU),
        ],
        errors=['Failed to scrape Azerty for "x": HTTP 500 for Azerty'],
    )


class TestTransform(unittest.TestCase):
    def test_payload_shape_and_store_ids(self):
        payload = transform_scraping_result(_result())
        scrape = payload["scrape"]
        self.assertTrue(scrape["timestamp"])
        self.assertEqual(len(scrape["items"]), 3)
        self.assertEqual(
            scrape["items"][0],
            {
                "price": 599.99,
                "name": "Radeon 7700XT",
                "url": "https://a.example/p/1",
                "item_type": "GPU",
                "store": {"id": 1, "name": "Alternate"},
            },
        )
        self.assertEqual(scrape["items"][1]["store"], {"id": 2, "name": "Coolblue"})
        self.assertEqual(scrape["items"][2]["store"]["id"], 1)

    def test_transformed_payload_is_valid(self):
        is_valid, errors = validate_mcp_data(transform_scraping_result(_result()))
        self.assertTrue(is_valid)
        self.assertEqual(errors, [])

    def test_metadata_counts(self):
        metadata = build_metadata(_result())
        self.assertEqual(metadata["total_products"], 3)
        self.assertEqual(metadata["gpu_count"], 2)
        self.assertEqual(metadata["cpu_count"], 1)
        self.assertEqual(metadata["store_count"], 2)
        self.assertEqual(metadata["error_count"], 1)

    def test_description_mentions_stores(self):
        description = create_data_description(_result())
        self.assertIn("3 products", description)
        self.assertIn("Alternate, Coolblue", description)


class TestValidate(unittest.TestCase):
    def test_missing_scrape(self):
        self.assertEqual(validate_mcp_data({}), (False, ["Missing scrape object"]))

    def test_items_must_be_list(self):
        is_valid, errors = validate_mcp_data({"scrape": {"timestamp": "t", "items": {}}})
        self.assertFalse(is_valid)
        self.assertIn("Scrape items must be an array", errors)

    def test_item_field_errors(self):
        payload = {
            "scrape": {
                "timestamp": "",
                "items": [{"name": "", "price": 0, "url": "", "item_type": "RAM", "store": {}}],
            }
        }
        is_valid, errors = validate_mcp_data(payload)
        self.assertFalse(is_valid)
        self.assertEqual(
            errors,
            [
                "Missing scrape timestamp",
                "Item 0: missing or invalid name",
                "Item 0: invalid price (0)",
                "Item 0: missing or invalid URL",
                "Item 0: invalid item_type (RAM)",
                "Item 0: missing store information",
            ],
        )


if __name__ == "__main__":
    unittest.main()
