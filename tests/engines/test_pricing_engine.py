"""
Pricing Engine Tests
=====================
Rule loading/validation, rule selection order and additive
modifiers. Amounts are exact Decimals throughout.
"""

from decimal import Decimal

import pytest

RULE_RECORDS = [
    {
        "sku": "TEE",
        "base_price": "10",
        "metafield_modifiers": [
            {"namespace": "custom", "key": "print", "value": "front+back", "amount": "3.5"},
        ],
        "option_modifiers": [
            {"value": "XXL", "amount": "2"},
            {"name": "Finish", "value": "Glitter", "amount": "1.25"},
        ],
    },
    {"sku": "TEE", "color": "Bleu Azur", "base_price": "12"},
]


def rules(records=None, aliases=None):
    from engines.pricing.rules import RuleSet
    return RuleSet.from_records(RULE_RECORDS if records is None else records, color_aliases=aliases)


def unit(sku="TEE", color="Black", metafields=(), options=()):
    from engines.pricing.engine import UnitAttributes
    from engines.production.models import Metafield, SelectedOption
    return UnitAttributes(
        sku=sku,
        color=color,
        metafields=tuple(Metafield(*m) for m in metafields),
        selected_options=tuple(SelectedOption(*o) for o in options),
    )


def price(u, rule_set=None):
    from engines.pricing.engine import price_unit
    return price_unit(u, rule_set or rules())


# ══════════════════════════════════════════════════════════════
# RULE MATCHING
# ══════════════════════════════════════════════════════════════

class TestBaseRule:
    def test_any_color_rule(self):
        quote = price(unit(color="Black"))
        assert quote.amount == Decimal("10")
        assert quote.matched

    def test_color_specific_rule_wins_over_any_color(self):
        assert price(unit(color="Bleu Azur")).amount == Decimal("12")

    def test_color_compared_without_parenthesised_suffix_and_case(self):
        assert price(unit(color="bleu azur (Stargazer)")).amount == Decimal("12")

    def test_color_alias(self):
        rule_set = rules(aliases={"sky": "bleu azur"})
        assert price(unit(color="Sky"), rule_set).amount == Decimal("12")

    def test_unknown_sku_is_flagged_not_fatal(self):
        quote = price(unit(sku="MUG"))
        assert quote.amount == Decimal("0")
        assert not quote.matched
        assert quote.rule is None

    def test_sku_is_exact(self):
        assert not price(unit(sku="tee")).matched

    def test_inactive_rules_skipped(self):
        rule_set = rules([
            {"sku": "TEE", "base_price": "99", "is_active": False},
            {"sku": "TEE", "base_price": "10"},
        ])
        assert price(unit(), rule_set).amount == Decimal("10")

    def test_priority_beats_color_specificity(self):
        rule_set = rules([
            {"sku": "TEE", "color": "Black", "base_price": "12"},
            {"sku": "TEE", "base_price": "8", "priority": 1},
        ])
        assert price(unit(color="Black"), rule_set).amount == Decimal("8")

    def test_configuration_order_breaks_ties(self):
        rule_set = rules([
            {"sku": "TEE", "color": "Black", "base_price": "12"},
            {"sku": "TEE", "color": "black", "base_price": "13"},
        ])
        assert price(unit(color="Black"), rule_set).amount == Decimal("12")
        assert rule_set.duplicates() == [("TEE", "black")]

    def test_no_duplicates_in_default_rules(self):
        assert rules().duplicates() == []


# ══════════════════════════════════════════════════════════════
# MODIFIERS
# ══════════════════════════════════════════════════════════════

class TestModifiers:
    def test_metafield_modifier_exact_match(self):
        quote = price(unit(metafields=[("custom", "print", "front+back")]))
        assert quote.amount == Decimal("13.5")
        assert quote.applied == ("custom.print=front+back",)

    def test_metafield_modifier_is_case_sensitive(self):
        assert price(unit(metafields=[("custom", "print", "Front+Back")])).amount == Decimal("10")

    def test_option_modifier_case_insensitive(self):
        assert price(unit(options=[("Taille", "xxl")])).amount == Decimal("12")

    def test_named_option_modifier_requires_name(self):
        assert price(unit(options=[("Style", "Glitter")])).amount == Decimal("10")
        assert price(unit(options=[("finish", "glitter")])).amount == Decimal("11.25")

    def test_modifiers_stack_without_rounding(self):
        quote = price(unit(
            metafields=[("custom", "print", "front+back")],
            options=[("Size", "XXL"), ("Finish", "Glitter")],
        ))
        assert quote.amount == Decimal("16.75")
        assert len(quote.applied) == 3

    def test_modifiers_belong_to_the_selected_rule(self):
        quote = price(unit(color="Bleu Azur", options=[("Size", "XXL")]))
        assert quote.amount == Decimal("12")

    def test_quote_times_quantity(self):
        assert price(unit()).times(3) == Decimal("30")


# ══════════════════════════════════════════════════════════════
# LOAD-TIME VALIDATION
# ══════════════════════════════════════════════════════════════

class TestRuleValidation:
    @pytest.mark.parametrize("record", [
        {"base_price": "10"},
        {"sku": "  ", "base_price": "10"},
        {"sku": "TEE"},
        {"sku": "TEE", "base_price": "ten"},
        {"sku": "TEE", "base_price": "10", "priority": "high"},
        {"sku": "TEE", "base_price": "10", "metafield_modifiers": [{"namespace": "custom", "amount": "1"}]},
        {"sku": "TEE", "base_price": "10", "option_modifiers": [{"amount": "1"}]},
        {"sku": "TEE", "base_price": "10", "option_modifiers": [{"value": "XL", "amount": "NaN"}]},
        {"sku": "TEE", "base_price": "10.1234567"},
        {"sku": "TEE", "base_price": "10", "option_modifiers": [{"value": "XL", "amount": "0.0000005"}]},
        {"sku": "TEE", "base_price": "1e12"},
        "not a mapping",
    ])
    def test_malformed_records_rejected(self, record):
        from engines.pricing.errors import RuleConfigurationError
        with pytest.raises(RuleConfigurationError):
            rules([{"sku": "OK", "base_price": "1"}, record])

    def test_error_names_the_rule(self):
        from engines.pricing.errors import RuleConfigurationError
        with pytest.raises(RuleConfigurationError) as exc_info:
            rules([{"sku": "OK", "base_price": "1"}, {"sku": "TEE"}])
        assert exc_info.value.rule_index == 1
        assert "rule #1" in str(exc_info.value)

    def test_camel_case_fields_accepted(self):
        rule_set = rules([{
            "sku": "TEE",
            "basePrice": "9",
            "isActive": True,
            "optionModifiers": [{"optionName": "Size", "optionValue": "XL", "amount": "1"}],
        }])
        assert price(unit(options=[("Size", "XL")]), rule_set).amount == Decimal("10")


class TestUnitAttributesFromLineItem:
    def test_reads_color_and_sku(self):
        from core.config import ProductionSettings
        from engines.pricing.engine import UnitAttributes
        from engines.production.models import LineItem, SelectedOption
        item = LineItem(
            sku=" TEE ",
            quantity=1,
            position=0,
            selected_options=(SelectedOption("Couleur", "Bleu Azur (Stargazer)"),),
        )
        attributes = UnitAttributes.from_line_item(item, ProductionSettings())
        assert attributes.sku == "TEE"
        assert price(attributes).amount == Decimal("12")
