from generation.chunking import (
    EDGE_BONUS,
    calculate_importance,
    preprocess_source,
    split_into_chunks,
    stratified_sample,
)
from generation.schemas import TextChunk


def long_text(sentences: int = 200) -> str:
    return " ".join(f"Sentence number {i} explains one more topic in detail." for i in range(sentences))


def make_chunks(importances):
    n = len(importances)
    return [
        TextChunk(text=f"chunk {i}", index=i, position=i / (n - 1), importance=imp)
        for i, imp in enumerate(importances)
    ]


def test_short_text_is_a_single_chunk():
    chunks = split_into_chunks("First sentence. Second sentence!", chunk_size=1000)
    assert len(chunks) == 1
    assert chunks[0].index == 0
    assert chunks[0].position == 1.0
    assert chunks[0].text == "First sentence. Second sentence!"


def test_chunks_respect_size_and_order():
    text = long_text()
    chunks = split_into_chunks(text, chunk_size=1000)

    assert len(chunks) > 5
    assert [c.index for c in chunks] == list(range(len(chunks)))
    assert chunks[0].position == 0.0
    assert chunks[-1].position == 1.0
    assert all(len(c.text) <= 1000 for c in chunks)
    positions = [c.position for c in chunks]
    assert positions == sorted(positions)


def test_trailing_fragment_without_punctuation_is_kept():
    chunks = split_into_chunks("A full sentence. and a trailing fragment", chunk_size=20)
    assert chunks[-1].text == "and a trailing fragment"


def test_oversized_sentence_is_not_split():
    sentence = "x" * 1500 + "."
    chunks = split_into_chunks(sentence, chunk_size=1000)
    assert len(chunks) == 1
    assert chunks[0].text == sentence


def test_edge_chunks_get_position_bonus():
    text = "plain words here."
    first = TextChunk(text=text, index=0, position=0.0)
    middle = TextChunk(text=text, index=10, position=0.5)
    assert calculate_importance(first, 20) - calculate_importance(middle, 20) == EDGE_BONUS


def test_keyword_signals_raise_importance():
    plain = TextChunk(text="some ordinary words go here.", index=10, position=0.5)
    marked = TextChunk(text="This is an important definition of JavaScript.", index=10, position=0.5)
    assert calculate_importance(marked, 20) > calculate_importance(plain, 20)


def test_stratified_sample_is_noop_when_enough_slots():
    chunks = make_chunks([1, 2, 3])
    assert stratified_sample(chunks, 3) == chunks
    assert stratified_sample(chunks, 10) == chunks


def test_stratified_sample_covers_every_third():
    # All the importance sits in the front third
    chunks = make_chunks([9, 9, 9, 1, 1, 1, 0, 0, 0])
    selected = stratified_sample(chunks, 3)

    assert len(selected) == 3
    thirds = {c.index // 3 for c in selected}
    assert thirds == {0, 1, 2}


def test_stratified_sample_returns_exactly_count():
    chunks = make_chunks([5, 1, 4, 2, 8, 3, 7, 6, 0, 9])
    for count in range(1, 10):
        assert len(stratified_sample(chunks, count)) == count


def test_stratified_sample_picks_most_important_within_a_third():
    chunks = make_chunks([1, 5, 2, 1, 7, 2, 3, 1, 9])
    selected = {c.index for c in stratified_sample(chunks, 3)}
    assert selected == {1, 4, 8}


def test_preprocess_below_threshold_is_unchanged():
    text = "short material." * 10
    processed, info = preprocess_source(text, problem_count=5)
    assert processed == text
    assert info.applied is False


def test_preprocess_long_text_keeps_original_order():
    text = long_text(400)
    processed, info = preprocess_source(text, problem_count=3)

    assert info.applied is True
    assert info.original_length == len(text)
    assert info.processed_length == len(processed)
    assert info.selected_chunks == 6
    assert len(processed) < len(text)

    kept = processed.split("\n\n")
    assert len(kept) == 6
    offsets = [text.index(part) for part in kept]
    assert offsets == sorted(offsets)
