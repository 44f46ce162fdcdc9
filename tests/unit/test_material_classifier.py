"""
Tests for material classification.
"""

import pytest

from models.orders import DemandClass
from services.material_classifier import (
    MaterialType,
    SaleType,
    is_organic,
    is_spot_sale,
    classify_material,
    classify_sale,
    demand_class_for_order,
    batch_matches_class,
    same_material,
    organic_suppliers,
    organic_substitution_options,
)
from tests.factories import OrderDemandFactory, StockBatchFactory


class TestIsOrganic:
    """Tests for organic detection."""

    @pytest.mark.parametrize("text", ["BOB001", "bio-hass", "FIARORG01", "Organic Hass", "ORG"])
    def test_organic_codes(self, text):
        assert is_organic(text) is True

    @pytest.mark.parametrize("text", ["FIARGRN01", "BCB001", "Hass 18"])
    def test_conventional_codes(self, text):
        assert is_organic(text) is False

    def test_empty_and_none(self):
        assert is_organic("") is False
        assert is_organic(None) is False

    def test_classify_material_tag(self):
        assert classify_material("bob12") == MaterialType.ORGANIC
        assert classify_material("FIARGRN01") == MaterialType.CONVENTIONAL


class TestIsSpotSale:
    """Tests for spot sale detection."""

    def test_spot_prefixes(self):
        assert is_spot_sale("BCB001") is True
        assert is_spot_sale("bob12") is True

    def test_production_code(self):
        assert is_spot_sale("FIARGRN01") is False

    def test_description_used_without_code(self):
        assert is_spot_sale(None, "Hass spot sale") is True
        assert is_spot_sale("", "Hass") is False

    def test_code_wins_over_description(self):
        assert is_spot_sale("FIARGRN01", "spot") is False

    def test_classify_sale_tag(self):
        assert classify_sale("BCB001") == SaleType.SPOT
        assert classify_sale("FIARGRN01") == SaleType.STANDARD


class TestDemandClass:
    """Tests for order and batch class resolution."""

    def test_derived_from_material(self):
        assert demand_class_for_order(OrderDemandFactory.create(material_id="FIARGRN01")) == DemandClass.CONVENTIONAL
        assert demand_class_for_order(OrderDemandFactory.create(material_id="FIARORG01")) == DemandClass.ORGANIC
        assert demand_class_for_order(OrderDemandFactory.create(material_id="BCB001")) == DemandClass.SPOT

    def test_organic_spot_is_spot(self):
        assert demand_class_for_order(OrderDemandFactory.create(material_id="BOB001")) == DemandClass.SPOT

    def test_explicit_flags_override_material(self):
        order = OrderDemandFactory.create(material_id="BCB001", is_spot_sale=False, is_organic=True)
        assert demand_class_for_order(order) == DemandClass.ORGANIC

    def test_batch_matches_production_class_by_organic_flag(self):
        conventional = StockBatchFactory.create(material_id="FIARGRN01")
        organic = StockBatchFactory.create(material_id="FIARORG01")

        assert batch_matches_class(conventional, DemandClass.CONVENTIONAL) is True
        assert batch_matches_class(conventional, DemandClass.ORGANIC) is False
        assert batch_matches_class(organic, DemandClass.ORGANIC) is True
        assert batch_matches_class(organic, DemandClass.CONVENTIONAL) is False

    def test_batch_matches_spot_class(self):
        assert batch_matches_class(StockBatchFactory.create(material_id="BCB001"), DemandClass.SPOT) is True
        assert batch_matches_class(StockBatchFactory.create(material_id="FIARGRN01"), DemandClass.SPOT) is False

    def test_same_material_is_exact(self):
        batch = StockBatchFactory.create(material_id="BCB001")
        assert same_material(batch, "bcb001") is True
        assert same_material(batch, "BCB002") is False
        assert same_material(batch, None) is False


class TestOrganicSubstitution:
    """Tests for organic-for-conventional advice."""

    @pytest.fixture
    def stock(self):
        return [
            StockBatchFactory.create(material_id="FIARORG01", supplier="Valle Verde"),
            StockBatchFactory.create(material_id="FIARORG01", supplier="Andes Organic"),
            StockBatchFactory.create(material_id="BOB001", supplier="Andes Organic"),
            StockBatchFactory.create(material_id="FIARGRN01", supplier="Conventional Co"),
        ]

    def test_organic_suppliers_sorted(self, stock):
        assert organic_suppliers(stock) == ["Andes Organic", "Valle Verde"]

    def test_recommends_supplier_with_most_batches(self, stock):
        order = OrderDemandFactory.create(material_id="FIARGRN01")

        options = organic_substitution_options(order, stock)

        assert options.can_use_organic is True
        assert options.available_suppliers == ["Andes Organic", "Valle Verde"]
        assert options.recommended_supplier == "Andes Organic"

    def test_organic_order_cannot_substitute(self, stock):
        order = OrderDemandFactory.create(material_id="FIARORG01")

        options = organic_substitution_options(order, stock)

        assert options.can_use_organic is False
        assert options.available_suppliers == []

    def test_unknown_selected_supplier(self, stock):
        order = OrderDemandFactory.create(material_id="FIARGRN01")

        options = organic_substitution_options(order, stock, selected_supplier="Nobody")

        assert options.can_use_organic is False
        assert options.available_suppliers == ["Andes Organic", "Valle Verde"]

    def test_no_organic_stock(self):
        order = OrderDemandFactory.create(material_id="FIARGRN01")
        stock = [StockBatchFactory.create(material_id="FIARGRN01")]

        assert organic_substitution_options(order, stock).can_use_organic is False
