import random
from types import MappingProxyType

from voice_transcribe.domain.result import Result, Speaker, Word, merge


def word(text: str, is_final: bool, start_ms: int = 0) -> Word:
    return Word(text=text, start_ms=start_ms, duration_ms=50, speaker=0, is_final=is_final)


def update(finals: list[str], nonfinals: list[str], fpt: int = 0, tpt: int = 0, speakers=None) -> Result:
    return Result(
        words=[word(t, True) for t in finals] + [word(t, False) for t in nonfinals],
        final_proc_time_ms=fpt,
        total_proc_time_ms=tpt,
        speakers=MappingProxyType(speakers or {}),
    )


class TestMerge:
    def test_merge_into_empty(self):
        result = Result()
        merge(result, update(["a"], ["b"], fpt=10, tpt=20))
        assert [w.text for w in result.words] == ["a", "b"]
        assert result.final_proc_time_ms == 10
        assert result.total_proc_time_ms == 20

    def test_nonfinal_tail_is_replaced(self):
        result = Result()
        merge(result, update(["a"], ["b", "c"]))
        merge(result, update([], ["bc"]))
        assert [w.text for w in result.words] == ["a", "bc"]

    def test_finals_are_never_removed(self):
        result = Result()
        merge(result, update(["a", "b"], []))
        merge(result, update([], []))
        assert [w.text for w in result.words] == ["a", "b"]

    def test_finals_precede_nonfinals(self):
        result = Result()
        incoming = Result(words=[word("x", False), word("y", True)])
        merge(result, incoming)
        assert [(w.text, w.is_final) for w in result.words] == [("y", True), ("x", False)]

    def test_speakers_replaced_wholesale(self):
        result = Result()
        merge(result, update([], [], speakers={1: Speaker(1, "Alice"), 2: Speaker(2, "Bob")}))
        merge(result, update([], [], speakers={2: Speaker(2, "Robert")}))
        assert dict(result.speakers) == {2: Speaker(2, "Robert")}

    def test_random_merges_keep_final_prefix(self):
        rng = random.Random(7)
        result = Result()
        expected_finals: list[str] = []
        for step in range(50):
            finals = [f"f{step}.{i}" for i in range(rng.randint(0, 3))]
            nonfinals = [f"n{step}.{i}" for i in range(rng.randint(0, 3))]
            merge(result, update(finals, nonfinals))
            expected_finals.extend(finals)

            texts = [w.text for w in result.words]
            assert texts[: len(expected_finals)] == expected_finals
            assert texts[len(expected_finals):] == nonfinals


class TestResult:
    def test_copy_is_detached(self):
        result = Result()
        merge(result, update(["a"], []))
        snapshot = result.copy()
        merge(result, update(["b"], []))
        assert [w.text for w in snapshot.words] == ["a"]

    def test_text_and_final_words(self):
        result = update(["Hello", " there"], [" fri"])
        assert result.text == "Hello there fri"
        assert [w.text for w in result.final_words] == ["Hello", " there"]
