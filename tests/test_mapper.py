import pytest

from smb_fieldmap.dictionary import (
    Category,
    SynonymDictionary,
    SynonymEntry,
    default_dictionary,
)
from smb_fieldmap.mapper import FieldMapper, MapperSettings, MappingSource


@pytest.fixture
def mapper() -> FieldMapper:
    return FieldMapper(default_dictionary())


def test_exact_canonical_match(mapper):
    m = mapper.map_header("Company Name", Category.ENTITY)

    assert m.canonical == "company_name"
    assert m.source == MappingSource.EXACT
    assert m.confidence_score == 1.0
    assert m.required is True
    assert m.detected == "Company Name"


def test_spanish_synonym_match(mapper):
    m = mapper.map_header("Nombre Empresa", Category.ENTITY)

    assert m.canonical == "company_name"
    assert m.source == MappingSource.SYNONYM
    assert m.confidence_score == pytest.approx(0.95)


def test_accented_synonym_match(mapper):
    m = mapper.map_header("  AÑO DE FUNDACIÓN ", Category.ENTITY)

    assert m.canonical == "founded_year"
    assert m.source == MappingSource.SYNONYM


def test_typo_is_resolved_by_fuzzy_match(mapper):
    m = mapper.map_header("Empres", Category.ENTITY)

    assert m.canonical == "company_name"
    assert m.source == MappingSource.FUZZY
    # similarity('empres', 'empresa') = 6/7, discounted as a synonym match
    assert m.confidence_score == pytest.approx(6 / 7 * 0.9)


def test_fuzzy_match_on_canonical_is_not_discounted(mapper):
    m = mapper.map_header("Sectr", Category.ENTITY)

    assert m.canonical == "sector"
    assert m.source == MappingSource.FUZZY
    assert m.confidence_score == pytest.approx(5 / 6)


def test_unrelated_header_is_unmapped(mapper):
    assert mapper.map_header("xyz_unrelated_field", Category.ENTITY) is None
    assert mapper.map_header("", Category.ENTITY) is None


def test_matching_is_scoped_to_category(mapper):
    assert mapper.map_header("País", Category.ENTITY).canonical == "hq_country"
    assert mapper.map_header("País", Category.RELATED_PARTY).canonical == "country"


def test_exact_beats_synonym_regardless_of_order():
    d = SynonymDictionary(
        [
            SynonymEntry("industry", Category.ENTITY, synonyms_en=("Sector",)),
            SynonymEntry("sector", Category.ENTITY),
        ]
    )
    m = FieldMapper(d).map_header("SECTOR", Category.ENTITY)

    assert m.canonical == "sector"
    assert m.source == MappingSource.EXACT


def test_canonical_fuzzy_wins_over_equally_similar_synonym():
    d = SynonymDictionary(
        [
            SynonymEntry("other", Category.ENTITY, synonyms_en=("abce",)),
            SynonymEntry("abcd", Category.ENTITY),
        ]
    )
    m = FieldMapper(d).map_header("abcf", Category.ENTITY)

    assert m.canonical == "abcd"
    assert m.confidence_score == pytest.approx(0.75)


def test_min_confidence_is_configurable():
    strict = FieldMapper(default_dictionary(), MapperSettings(min_confidence=0.9))

    assert strict.map_header("Empres", Category.ENTITY) is None


@pytest.mark.parametrize(
    "header",
    ["Empres", "Sectr", "Webb", "Emplados", "Facturacion 2024", "Curency", "zz"],
)
def test_fuzzy_results_never_below_threshold(mapper, header):
    m = mapper.map_header(header, Category.ENTITY)
    if m is not None and m.source == MappingSource.FUZZY:
        assert m.confidence_score >= 0.6


def test_map_headers_accounts_for_every_header(mapper):
    headers = ["Empresa", "Sector", "xyz_unrelated_field", "Web", "qqqq"]
    table = mapper.map_headers(headers, Category.ENTITY)

    assert list(table.mapped) == ["Empresa", "Sector", "Web"]
    assert table.unmapped == ["xyz_unrelated_field", "qqqq"]
    assert len(table.mapped) + len(table.unmapped) == len(headers)
    assert table.missing_required(default_dictionary()) == []
    assert table.required_mapped_count() == 2
    assert table.average_confidence() == pytest.approx((0.95 + 1.0 + 0.95) / 3)


def test_map_headers_applies_profile_first(mapper):
    profile = {
        "Col X": "company_name",
        "col_y": "sector",
        "zzzz qqqq": "ownership_pct",  # not an entity field: ignored
    }
    table = mapper.map_headers(
        ["COL X", "Col Y", "zzzz qqqq", "Web"], Category.ENTITY, profile
    )

    assert table.mapped["COL X"].canonical == "company_name"
    assert table.mapped["COL X"].from_profile is True
    assert table.mapped["COL X"].source == MappingSource.EXACT
    assert table.mapped["COL X"].confidence_score == 1.0
    assert table.mapped["Col Y"].canonical == "sector"
    assert table.mapped["Col Y"].required is True
    assert table.mapped["Web"].from_profile is False
    assert table.unmapped == ["zzzz qqqq"]


def test_missing_required_fields(mapper):
    table = mapper.map_headers(["company_name", "industry"], Category.ENTITY)

    assert table.missing_required(default_dictionary()) == ["sector"]


def test_average_confidence_without_mapping_is_zero(mapper):
    table = mapper.map_headers(["qqqq"], Category.ENTITY)

    assert table.average_confidence() == 0.0


def test_repeated_labels_are_matched_on_the_label_not_the_key(mapper):
    table = mapper.map_headers(
        ["Empresa", "Sector", "Sector.1"],
        Category.ENTITY,
        labels=["Empresa", "Sector", "Sector"],
    )

    repeated = table.mapped["Sector.1"]
    assert repeated.canonical == "sector"
    assert repeated.source == MappingSource.EXACT
    assert repeated.confidence_score == 1.0
    assert repeated.detected == "Sector"
    assert table.headers_for("sector") == ["Sector", "Sector.1"]


def test_profile_entry_covers_every_column_with_that_label(mapper):
    table = mapper.map_headers(
        ["Giro", "Giro.1", "Empresa"],
        Category.ENTITY,
        {"Giro": "sector"},
        labels=["Giro", "Giro", "Empresa"],
    )

    assert table.mapped["Giro"].from_profile is True
    assert table.mapped["Giro.1"].from_profile is True
    assert table.mapped["Giro.1"].detected == "Giro"
    assert table.unmapped == []
