from pathlib import Path

import pytest
import yaml

from bookmap.engine.config import ImportOptions, MappingConfig, load_config, save_config
from bookmap.engine.errors import ConfigurationError
from bookmap.engine.types import Platform


def _doc(**overrides):
    doc = {
        "version": "1",
        "pipeline": "tabular",
        "base": {
            "reservation_code": "Code",
            "guest_name": "Guest",
            "check_in_date": "Check-in",
            "num_nights": "Nights",
            "platform": "Channel",
            "listing_name": "Listing",
            "cleaning_fee": "Cleaning",
        },
        "overrides": {"Airbnb": {"cleaning_fee": "Airbnb Cleaning"}},
        "options": {"preview_limit": 5},
    }
    doc.update(overrides)
    return doc


def test_from_config_builds_resolver():
    cfg = MappingConfig.from_config(_doc())
    assert cfg.options.preview_limit == 5
    assert cfg.options.envelope == "data"
    r = cfg.build_resolver()
    assert r.resolve("cleaning_fee", Platform.AIRBNB) == "Airbnb Cleaning"
    assert r.resolve("cleaning_fee", Platform.VRBO) == "Cleaning"


def test_round_trip_through_yaml(tmp_path: Path):
    cfg = MappingConfig.from_config(_doc())
    path = save_config(cfg, tmp_path / "maps" / "mapping.yaml")
    text = path.read_text()
    assert text.startswith("version:")  # keys keep their order
    again = load_config(path)
    assert again.to_config() == cfg.to_config()
    assert yaml.safe_load(text)["overrides"] == {"airbnb": {"cleaning_fee": "Airbnb Cleaning"}}


@pytest.mark.parametrize(
    "overrides, msg",
    [
        ({"pipeline": "fax"}, "pipeline"),
        ({"base": {"guest_name": 3}}, "base/guest_name"),
        ({"options": {"preview_limit": -1}}, "options/preview_limit"),
        ({"surprise": True}, "Additional properties"),
    ],
)
def test_schema_errors(overrides, msg):
    with pytest.raises(ConfigurationError, match=msg):
        MappingConfig.from_config(_doc(**overrides))


def test_override_for_required_field_rejected_on_load(tmp_path: Path):
    path = tmp_path / "mapping.yaml"
    path.write_text(yaml.safe_dump(_doc(overrides={"vrbo": {"guest_name": "Name"}})))
    with pytest.raises(ConfigurationError, match="only be mapped on the base"):
        load_config(path)


def test_overrides_locked_while_base_incomplete():
    doc = _doc()
    del doc["base"]["listing_name"]
    cfg = MappingConfig.from_config(doc)
    with pytest.raises(ConfigurationError, match="locked"):
        cfg.build_resolver()


def test_base_key_not_allowed_under_overrides():
    with pytest.raises(ConfigurationError, match="belong under 'base'"):
        MappingConfig.from_config(_doc(overrides={"ALL": {"cleaning_fee": "x"}}))


def test_import_options_defaults_and_unknown_keys():
    assert ImportOptions.from_config(None) == ImportOptions()
    opts = ImportOptions.from_config({"dedupe_field": "guest_email"})
    assert opts.dedupe_field == "guest_email" and opts.preview_limit == 20
    with pytest.raises(ConfigurationError, match="Unknown import option"):
        ImportOptions.from_config({"colour": "blue"})


def test_from_resolver_keeps_overrides():
    r = MappingConfig.from_config(_doc()).build_resolver()
    r.set_mapping("cleaning_fee", Platform.VRBO, "VRBO Cleaning")
    cfg = MappingConfig.from_resolver(r, "tabular")
    assert cfg.overrides == {"airbnb": {"cleaning_fee": "Airbnb Cleaning"}, "vrbo": {"cleaning_fee": "VRBO Cleaning"}}
    assert cfg.build_resolver().mappings() == r.mappings()


def test_bracketed_header_needs_the_source_headers(tmp_path: Path):
    doc = _doc()
    doc["base"]["cleaning_fee"] = "Cleaning [EUR]"
    path = tmp_path / "mapping.yaml"
    path.write_text(yaml.safe_dump(doc))
    with pytest.raises(ConfigurationError, match="Unexpected"):
        load_config(path)
    cfg = load_config(path, check=False)
    r = cfg.build_resolver(columns=["Guest", "Cleaning [EUR]"])
    assert r.resolve("cleaning_fee") == "Cleaning [EUR]"
