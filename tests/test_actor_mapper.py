from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List

import pytest

from handy_dandy.mappers import to_foundry_actor_data
from handy_dandy.mappers.actor_items import stable_id
from handy_dandy.pf2e.images import DEFAULT_ACTOR_IMAGE, DEFAULT_HAZARD_IMAGE, DEFAULT_LOOT_IMAGE


def _items_of(document: Dict[str, Any], item_type: str) -> List[Dict[str, Any]]:
    return [item for item in document["items"] if item["type"] == item_type]


def _named(document: Dict[str, Any], name: str) -> Dict[str, Any]:
    return next(item for item in document["items"] if item["name"] == name)


def test_creature_core_fields(actor_record) -> None:
    document = to_foundry_actor_data(actor_record)
    system = document["system"]

    assert document["type"] == "npc"
    assert document["img"] == DEFAULT_ACTOR_IMAGE
    assert system["traits"]["value"] == ["animal", "fire"]
    assert system["traits"]["otherTags"] == ["ashbound"]
    assert system["traits"]["size"] == {"value": "med"}
    assert system["details"]["level"] == {"value": 2}
    assert system["details"]["publicNotes"] == (
        "<p>A wolf wreathed in embers.</p><p><strong>Other Traits</strong> ashbound</p>"
    )
    assert system["attributes"]["hp"] == {"value": 32, "max": 32, "temp": 0, "details": ""}
    assert system["attributes"]["ac"] == {"value": 17, "details": ""}
    assert system["perception"]["mod"] == 8
    assert system["perception"]["senses"] == ["low-light vision", "scent (imprecise) 30 feet"]
    assert system["saves"]["fortitude"] == {"value": 9, "saveDetail": ""}
    assert system["abilities"]["int"] == {"mod": -4}
    assert system["skills"] == {
        "athletics": {"value": 9, "base": 9, "details": ""},
        "stealth": {"value": 7, "base": 7, "details": ""},
    }


def test_embedded_items_follow_record_order(actor_record) -> None:
    document = to_foundry_actor_data(actor_record)

    assert [item["type"] for item in document["items"]] == [
        "melee",
        "action",
        "action",
        "spellcastingEntry",
        "spell",
        "spell",
        "equipment",
    ]


def test_strike_mapping(actor_record) -> None:
    strike = _named(to_foundry_actor_data(actor_record), "Jaws")
    system = strike["system"]

    assert strike["_id"] == stable_id("cinder-wolf", "strike", 0, "Jaws")
    assert system["bonus"] == {"value": 11}
    assert list(system["damageRolls"]) == [
        stable_id("cinder-wolf", "strike", 0, "damage", 0),
        stable_id("cinder-wolf", "strike", 0, "damage", 1),
    ]
    assert list(system["damageRolls"].values()) == [
        {"damage": "1d8+4", "damageType": "piercing", "category": None},
        {"damage": "1d4", "damageType": "fire", "category": "persistent"},
    ]
    assert system["traits"] == {"value": ["fire", "agile"], "otherTags": ["smoldering"]}
    assert system["attackEffects"] == {"value": ["knockdown"]}
    assert system["description"]["value"] == "<p>Singe</p><p><strong>Other Traits</strong> smoldering</p>"


def test_legacy_damage_types_are_renamed(actor_record) -> None:
    actor_record["strikes"][0]["damage"] = [{"formula": "2d6", "damageType": "negative", "notes": None}]

    strike = _named(to_foundry_actor_data(actor_record), "Jaws")

    assert list(strike["system"]["damageRolls"].values())[0]["damageType"] == "void"


def test_special_actions(actor_record) -> None:
    document = to_foundry_actor_data(actor_record)
    pack_attack = _named(document, "Pack Attack")["system"]
    ember_howl = _named(document, "Ember Howl")["system"]

    assert pack_attack["actionType"] == {"value": "passive"}
    assert pack_attack["actions"] == {"value": None}
    assert pack_attack["category"] == "interaction"
    assert pack_attack["frequency"] is None

    assert ember_howl["actionType"] == {"value": "action"}
    assert ember_howl["actions"] == {"value": 1}
    assert ember_howl["frequency"] == {"value": 1, "max": 1, "per": "PT1M"}
    assert ember_howl["traits"] == {"value": ["auditory", "emotion", "fear", "mental"], "otherTags": []}
    description = ember_howl["description"]["value"]
    assert description.startswith("<p><strong>Frequency</strong> once per minute</p>")
    assert "@Template[type:emanation|distance:30]" in description
    assert "@Check[will|dc:18]" in description
    assert "@UUID[Compendium.pf2e.conditionitems.Item.TBSHQspnbcqxsmjL]{Frightened 1}" in description


def test_spellcasting_entry_owns_its_spells(actor_record) -> None:
    document = to_foundry_actor_data(actor_record)
    entry = _items_of(document, "spellcastingEntry")[0]
    ignition, breathe_fire = _items_of(document, "spell")

    assert entry["system"]["tradition"] == {"value": "primal"}
    assert entry["system"]["prepared"] == {"value": "innate", "flexible": False}
    assert entry["system"]["spelldc"] == {"value": 10, "dc": 18}
    assert ignition["system"]["location"] == {"value": entry["_id"]}
    assert breathe_fire["system"]["location"] == {"value": entry["_id"]}
    assert ignition["system"]["level"] == {"value": 1}
    assert ignition["system"]["traits"]["value"] == ["primal", "cantrip"]
    assert breathe_fire["system"]["traits"]["value"] == ["primal"]


def test_inventory_category_is_inferred(actor_record) -> None:
    collar = _named(to_foundry_actor_data(actor_record), "Charred Collar")

    assert collar["type"] == "equipment"
    assert collar["img"] == "systems/pf2e/icons/default-icons/equipment.svg"
    assert collar["system"]["quantity"] == 1


def test_inventory_images_must_be_host_local(actor_record) -> None:
    actor_record["inventory"] = [
        {"name": "Hunting Bow", "itemType": None, "img": "https://cdn.example/bow.png"},
        {"name": "Ring", "itemType": "equipment", "img": "worlds/mine/ring.webp"},
    ]

    document = to_foundry_actor_data(actor_record)

    assert _named(document, "Hunting Bow")["type"] == "weapon"
    assert _named(document, "Hunting Bow")["img"] == "systems/pf2e/icons/default-icons/weapon.svg"
    assert _named(document, "Ring")["img"] == "worlds/mine/ring.webp"


def test_iwr_normalisation(actor_record) -> None:
    attributes = to_foundry_actor_data(actor_record)["system"]["attributes"]

    assert attributes["immunities"] == [{"type": "fire", "exceptions": [], "notes": ""}]
    assert attributes["weaknesses"] == [
        {"type": "cold", "value": 5, "exceptions": [], "notes": ""},
        {"type": "salt-water", "value": 3, "exceptions": [], "notes": ""},
    ]
    assert attributes["resistances"] == [
        {
            "type": "physical",
            "value": 3,
            "exceptions": ["adamantine"],
            "doubleVs": [],
            "notes": "except ghost touch",
        }
    ]


def test_unknown_iwr_type_becomes_custom(actor_record) -> None:
    actor_record["attributes"]["weaknesses"] = [{"type": "Sunlight", "value": 5, "exceptions": []}]

    weaknesses = to_foundry_actor_data(actor_record)["system"]["attributes"]["weaknesses"]

    assert weaknesses == [{"type": "custom", "value": 5, "exceptions": [], "customLabel": "Sunlight", "notes": ""}]


@pytest.mark.parametrize("size, width", [("med", 1), ("lg", 2), ("huge", 3), ("grg", 4)])
def test_prototype_token(actor_record, size, width) -> None:
    token = to_foundry_actor_data(dict(actor_record, size=size))["prototypeToken"]

    assert token["name"] == "Cinder Wolf"
    assert token["width"] == width
    assert token["height"] == width
    assert token["texture"]["src"] == DEFAULT_ACTOR_IMAGE
    assert token["bar1"] == {"attribute": "attributes.hp"}
    assert token["disposition"] == -1
    assert token["actorLink"] is False


def test_loot_actor(actor_record) -> None:
    record = dict(
        actor_record,
        actorType="loot",
        loot={"lootSheetType": "Merchant", "hiddenWhenEmpty": True},
        inventory=[
            {"name": "Scroll of Heal", "itemType": "spell", "quantity": 2},
            {"name": "Wand of Heal", "itemType": "wand"},
            {"name": "Longsword", "itemType": None},
        ],
    )

    document = to_foundry_actor_data(record)

    assert document["type"] == "loot"
    assert document["img"] == DEFAULT_LOOT_IMAGE
    assert document["system"]["lootSheetType"] == "Merchant"
    assert document["system"]["hiddenWhenEmpty"] is True
    assert [(item["name"], item["type"]) for item in document["items"]] == [
        ("Scroll of Heal", "equipment"),
        ("Wand of Heal", "consumable"),
        ("Longsword", "weapon"),
    ]
    assert _named(document, "Scroll of Heal")["system"]["quantity"] == 2
    token = document["prototypeToken"]
    assert token["actorLink"] is True
    assert token["disposition"] == 0
    assert token["bar1"] == {"attribute": None}


def test_hazard_actor(actor_record) -> None:
    record = dict(
        actor_record,
        actorType="hazard",
        hazard={
            "isComplex": True,
            "disable": "DC 22 Thievery to jam the gears",
            "routine": None,
            "reset": None,
            "emitsSound": "always",
            "hardness": 8,
            "stealthBonus": 12,
            "stealthDetails": "(trained)",
        },
    )

    document = to_foundry_actor_data(record)
    system = document["system"]

    assert document["type"] == "hazard"
    assert document["img"] == DEFAULT_HAZARD_IMAGE
    assert "abilities" not in system
    assert "perception" not in system
    assert system["details"]["isComplex"] is True
    assert system["details"]["disable"] == "<p>@Check[thievery|dc:22] to jam the gears</p>"
    assert system["attributes"]["hardness"] == 8
    assert system["attributes"]["stealth"] == {"value": 12, "details": "<p>(trained)</p>"}
    assert system["attributes"]["emitsSound"] == "always"
    assert "equipment" not in {item["type"] for item in document["items"]}


def test_unknown_actor_type_maps_to_npc(actor_record, caplog) -> None:
    caplog.set_level(logging.WARNING, logger="handy_dandy.mappers.foundry")

    document = to_foundry_actor_data(dict(actor_record, actorType="kaiju"))

    assert document["type"] == "npc"
    assert "unknown actor category" in caplog.text


def test_actor_mapping_is_deterministic(actor_record) -> None:
    first = to_foundry_actor_data(actor_record)
    second = to_foundry_actor_data(copy.deepcopy(actor_record))

    assert first == second
    assert [item["_id"] for item in first["items"]] == [item["_id"] for item in second["items"]]
    assert len({item["_id"] for item in first["items"]}) == len(first["items"])


def test_stale_actor_is_migrated_before_mapping(actor_record) -> None:
    stale = dict(actor_record, schema_version=2, traits=["Animal", "animal", "Fire"])

    document = to_foundry_actor_data(stale)

    assert document["system"]["traits"]["value"] == ["animal", "fire"]
    assert document["flags"]["handy-dandy"]["schemaVersion"] == 3


def test_non_string_prose_renders_empty(actor_record) -> None:
    baseline = to_foundry_actor_data(actor_record)
    record = copy.deepcopy(actor_record)
    record["description"] = 5
    record["strikes"][0]["description"] = 12
    record["spellcasting"][0]["notes"] = ["innate"]
    record["spellcasting"][0]["spells"][0]["description"] = {"text": "A spark."}

    document = to_foundry_actor_data(record)

    assert document["system"]["details"]["publicNotes"] == "<p><strong>Other Traits</strong> ashbound</p>"
    assert _named(document, "Jaws")["system"]["description"] == _named(baseline, "Jaws")["system"]["description"]
    assert _named(document, "Primal Innate Spells")["system"]["description"]["value"] == ""
    assert _named(document, "Ignition")["system"]["description"]["value"] == ""


def test_malformed_hazard_sound_falls_back_to_encounter(actor_record) -> None:
    record = dict(actor_record, actorType="hazard", hazard={"emitsSound": ["always"], "isComplex": False})

    document = to_foundry_actor_data(record)

    assert document["system"]["attributes"]["emitsSound"] == "encounter"


def test_malformed_loot_sheet_falls_back_to_loot(actor_record) -> None:
    record = dict(actor_record, actorType="loot", loot={"lootSheetType": {"x": 1}})

    document = to_foundry_actor_data(record)

    assert document["system"]["lootSheetType"] == "Loot"
