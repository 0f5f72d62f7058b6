import json

import pytest

import targets
from targets import Catalogue, load_overrides, menu_item


def test_menu_item_name_and_first_selector():
    item = menu_item("Fund Request")
    assert item.name == "FundRequestMenuItem"
    assert item.candidates[0].query == '.dxbl-menu-dropdown-item:has-text("Fund Request")'


def test_calendar_day_matches_whole_label():
    day = targets.calendar_day(5)
    assert all("has-text" not in c.query for c in day.candidates)
    assert day.candidates[0].query == 'button:text-is("5")'


def test_calendar_day_picks_last_match_for_high_days():
    assert all(c.pick == "last" for c in targets.calendar_day(31).candidates)
    assert all(c.pick == "first" for c in targets.calendar_day(5).candidates)


def test_due_date_picker_requires_enabled():
    assert all(c.require_enabled for c in targets.DUE_DATE_PICKER.candidates)


def test_catalogue_applies_overrides_first():
    catalogue = Catalogue({"SaveButton": ["#btnSave"], "FundRequestMenuItem": ["#fr"]})
    assert catalogue.SAVE_BUTTON.candidates[0].query == "#btnSave"
    assert len(catalogue.SAVE_BUTTON.candidates) == len(targets.SAVE_BUTTON.candidates) + 1
    assert catalogue.menu_item("Fund Request").candidates[0].query == "#fr"
    # untouched targets are returned as-is
    assert catalogue.LOGIN_BUTTON is targets.LOGIN_BUTTON


def test_catalogue_unknown_target():
    with pytest.raises(AttributeError):
        Catalogue().NOT_A_TARGET
    with pytest.raises(AttributeError):
        Catalogue().GRID_ROWS


def test_load_overrides(tmp_path):
    path = tmp_path / "overrides.json"
    path.write_text(json.dumps({"SaveButton": ["#btnSave"], "Broken": "not-a-list"}), encoding="utf-8")
    assert load_overrides(path) == {"SaveButton": ["#btnSave"]}


def test_load_overrides_missing_or_invalid(tmp_path):
    assert load_overrides(tmp_path / "missing.json") == {}
    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    assert load_overrides(bad) == {}
    listing = tmp_path / "list.json"
    listing.write_text("[]", encoding="utf-8")
    assert load_overrides(listing) == {}
