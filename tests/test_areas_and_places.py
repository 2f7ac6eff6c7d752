"""Unit tests for area detection and place resolution."""

from unittest.mock import MagicMock

from classes.areas import AreaResolver, normalize_area_code, resolve_area_choice
from classes.errors import OracleTimeoutError
from classes.oracle_contracts import AreaGuess
from classes.place_catalog import (
    PlaceCatalog,
    detect_ambiguous_zone,
    extract_place_hint,
    resolve_zone_choice,
    safe_place_value,
)


class TestAreaResolver:
    """Local scoring with an oracle only for undecided texts."""

    def test_it_synergy_accepts_tv_issue(self):
        result = AreaResolver().detect("la tv no prende")

        assert result["area"] == "it"
        assert result["source"] == "local"
        assert result["confidence"] == 0.95

    def test_alias_plus_hints_is_accepted(self):
        assert AreaResolver().detect("fuga de agua en el wc, urge mantenimiento")["area"] == "man"

    def test_single_hint_stays_undecided(self):
        result = AreaResolver().detect("el aire no funciona")

        assert result["area"] is None
        assert result["source"] == "undecided"

    def test_oracle_answers_when_local_is_undecided(self):
        oracle = MagicMock()
        oracle.detect_area.return_value = AreaGuess(primary_area="ama", areas=["ama"], confidence=0.8)

        result = AreaResolver(oracle).detect("algo raro pasa")

        assert result["area"] == "ama"
        assert result["source"] == "oracle"

    def test_oracle_failure_stays_undecided(self):
        oracle = MagicMock()
        oracle.detect_area.side_effect = OracleTimeoutError("slow")

        assert AreaResolver(oracle).detect("algo raro pasa")["area"] is None

    def test_menu_choice_by_number_or_alias(self):
        assert resolve_area_choice("2") == "it"
        assert resolve_area_choice("9") is None
        assert resolve_area_choice("sistemas") == "it"
        assert resolve_area_choice("hola") is None
        assert resolve_area_choice("1", ["seg", "man"]) == "seg"

    def test_normalize_area_code(self):
        assert normalize_area_code("Room Service") == "rs"
        assert normalize_area_code("ama de llaves") == "ama"
        assert normalize_area_code("") is None


class TestPlaceCatalog:
    """Lookup order and suggestion rules."""

    def test_room_number_is_exact(self, catalog):
        found = catalog.lookup("1205")

        assert found.is_exact
        assert found.exact.label == "Habitación 1205"
        assert found.exact.via == "room_number"

    def test_unknown_room_still_resolves(self, catalog):
        assert catalog.lookup("hab 9999").exact.label == "Habitación 9999"

    def test_alias_is_exact(self, catalog):
        assert catalog.lookup("recepcion").exact.label == "Lobby"

    def test_villa_number(self, catalog):
        assert catalog.lookup("villa 2").exact.label == "Villa 2"

    def test_ambiguous_zone_lists_options(self, catalog):
        found = catalog.lookup("cocina")

        assert not found.is_exact
        assert found.zone == "cocina"
        assert [c.label for c in found.suggestions][:2] == ["Cocina Principal", "Cocina Nido"]

    def test_typo_gives_suggestions_only(self, catalog):
        found = catalog.lookup("gimnacio")

        assert not found.is_exact
        assert found.suggestions[0].label == "Gimnasio"
        assert found.suggestions[0].via == "fuzzy"

    def test_inactive_places_are_not_indexed(self, catalog):
        assert "Lobby Antiguo" not in catalog.labels()

    def test_add_freeform_place_once(self, catalog):
        assert catalog.add_place("Pasillo Norte") is True
        assert catalog.add_place("pasillo norte") is False
        assert catalog.lookup("pasillo norte").exact.label == "Pasillo Norte"

    def test_loads_given_items(self):
        small = PlaceCatalog([{"id": "x", "label": "Terraza Sur", "aliases": ["terraza"]}])

        assert small.labels() == ["Terraza Sur"]
        assert small.lookup("terraza").exact.label == "Terraza Sur"


class TestPlaceHelpers:

    def test_safe_place_value(self):
        assert safe_place_value('{"place": 1}') is None
        assert safe_place_value("  pasillo norte. ") == "Pasillo norte"
        assert safe_place_value("") is None

    def test_hint_from_room(self):
        assert extract_place_hint("no sirve la tv de la 1205") == "Habitación 1205"

    def test_hint_from_catalog_name(self, catalog):
        assert extract_place_hint("hay una fuga en el lobby", catalog) == "Lobby"

    def test_hint_from_trailing_phrase(self):
        assert extract_place_hint("gotea la regadera en el pasillo norte") == "Pasillo norte"

    def test_zone_helpers(self):
        assert detect_ambiguous_zone("la alberca familiar") is None
        assert detect_ambiguous_zone("fuga en la alberca") == "alberca"
        assert resolve_zone_choice("cocina", "2") == "Cocina Nido"
        assert resolve_zone_choice("cocina", "cielomar") == "Cocina Cielomar"
        assert resolve_zone_choice("cocina", "9") is None
