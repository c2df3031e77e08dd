from cardstream.stream.assembly import AssemblyModel


def _doc(*sections, title="T"):
    return {"title": title, "sections": list(sections)}


def test_new_sections_get_generated_ids():
    model = AssemblyModel()
    patch = model.apply(_doc(
        {"title": "A", "fields": [{"label": "Name", "value": "Ada"}]},
        {"title": "B", "items": [{"title": "Launch"}]},
    ))

    record = patch.record
    assert patch.new_section_indices == [0, 1]
    assert record.section_ids() == ("section_0", "section_1")
    assert record.sections[0].fields[0].id == "field_0_0"
    assert record.sections[1].items[0].id == "item_1_0"
    assert not record.sections[0].fields[0].placeholder
    assert not record.sections[1].items[0].placeholder


def test_explicit_ids_are_kept():
    model = AssemblyModel()
    record = model.apply(_doc({"id": "contact", "title": "A", "fields": [{"id": "n", "label": "N", "value": 1}]})).record
    assert record.sections[0].id == "contact"
    assert record.sections[0].fields[0].id == "n"


def test_duplicate_ids_fall_back_to_generated():
    model = AssemblyModel()
    record = model.apply(_doc({"title": "A", "fields": [{"id": "a", "value": 1}, {"id": "a", "value": 2}]})).record
    assert [f.id for f in record.sections[0].fields] == ["a", "field_0_1"]


def test_defaults_for_missing_labels_and_titles():
    model = AssemblyModel()
    record = model.apply(_doc({"fields": [{"value": "x"}], "items": [{}]})).record
    section = record.sections[0]

    assert section.title == "Section 1"
    assert section.kind == "info"
    assert section.fields[0].label == "Field 1"
    assert section.items[0].title == "Item 1"
    assert section.items[0].placeholder


def test_placeholder_flips_when_real_value_arrives():
    model = AssemblyModel()
    first = model.apply(_doc({"title": "A", "fields": [{"label": "Name", "value": "..."}]}))
    assert first.record.sections[0].fields[0].placeholder

    second = model.apply(_doc({"title": "A", "fields": [{"label": "Name", "value": "Ada"}]}))
    field = second.record.sections[0].fields[0]
    assert not field.placeholder
    assert field.value == "Ada"
    assert field.id == "field_0_0"
    assert ("sections", 0, "fields", 0) in second.changed_paths
    assert second.new_section_indices == []


def test_flagged_entries_stay_placeholders():
    model = AssemblyModel()
    record = model.apply(_doc({"title": "A", "fields": [
        {"label": "a", "value": "x", "placeholder": True},
        {"label": "b", "value": "y", "meta": {"placeholder": True}},
    ]})).record
    assert all(f.placeholder for f in record.sections[0].fields)


def test_arrays_grow_and_keep_existing_entries():
    model = AssemblyModel()
    first = model.apply(_doc({"title": "A", "fields": [{"label": "a", "value": 1}]}))
    original = first.record.sections[0].fields[0]

    second = model.apply(_doc({"title": "A", "fields": [{"label": "a", "value": 1}, {"label": "b", "value": 2}]}))
    fields = second.record.sections[0].fields

    assert fields[0] is original
    assert [f.id for f in fields] == ["field_0_0", "field_0_1"]
    assert second.changed_paths == [("sections", 0, "fields", 1)]


def test_unchanged_subtrees_are_shared():
    model = AssemblyModel()
    first = model.apply(_doc({"title": "A"}, {"title": "B", "fields": [{"label": "x", "value": "..."}]}))
    second = model.apply(_doc({"title": "A"}, {"title": "B", "fields": [{"label": "x", "value": "done"}]}))

    assert second.record is not first.record
    assert second.record.sections[0] is first.record.sections[0]
    assert second.record.sections[1] is not first.record.sections[1]
    assert second.changed_paths == [("sections", 1, "fields", 0)]


def test_identical_input_changes_nothing(card):
    model = AssemblyModel()
    first = model.apply(card)
    second = model.apply(card)

    assert not second.changed
    assert second.record is first.record


def test_title_change_path():
    model = AssemblyModel()
    model.apply(_doc(title="Draft"))
    patch = model.apply(_doc(title="Final"))
    assert patch.changed_paths == [("title",)]
    assert patch.record.title == "Final"


def test_round_trip_of_complete_document(card):
    model = AssemblyModel()
    model.apply(card)
    assert model.record.to_dict() == card


def test_finalize_clears_flags():
    model = AssemblyModel()
    model.apply(_doc({"title": "A", "fields": [{"label": "a", "value": "..."}], "items": [{"title": "Item 1"}]}))

    patch = model.finalize()
    section = patch.record.sections[0]
    assert not section.fields[0].placeholder
    assert not section.items[0].placeholder
    assert set(patch.changed_paths) == {("sections", 0, "fields", 0), ("sections", 0, "items", 0)}
    assert not model.finalize().changed


def test_custom_keys_and_sentinel():
    model = AssemblyModel(placeholder_value="TBD", title_key="name", sections_key="blocks")
    record = model.apply({"name": "N", "blocks": [{"title": "A", "fields": [{"value": "TBD"}, {"value": "..."}]}]}).record

    assert record.title == "N"
    assert record.sections[0].fields[0].placeholder
    assert not record.sections[0].fields[1].placeholder


def test_empty_input():
    model = AssemblyModel()
    patch = model.apply(None)
    assert not patch.changed
    assert patch.record.sections == ()
