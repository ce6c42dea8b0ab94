from autopause.text import join_segments, remove_overlap


def test_remove_overlap_strips_repeated_prefix():
    previous = "we walked down to the river bank"
    current = "The river bank, was flooded again"
    assert remove_overlap(previous, current) == "was flooded again"


def test_remove_overlap_needs_two_words():
    assert remove_overlap("see you at the bank", "bank holiday") == "bank holiday"


def test_remove_overlap_without_match_or_context():
    assert remove_overlap("", "  fresh text ") == "fresh text"
    assert remove_overlap("one two", "three four") == "three four"


def test_join_segments_skips_blank_entries():
    assert join_segments(["first ", "", "  ", "second"]) == "first\n\nsecond"
