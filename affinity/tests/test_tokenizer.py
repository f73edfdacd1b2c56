"""Tests for bilingual tokenization."""

from affinity.engine.tokenizer import tokenize_content, tokenize_title


class TestContentTokens:

    def test_empty_and_blank(self):
        assert tokenize_content("") == set()
        assert tokenize_content("   \n\t") == set()

    def test_latin_words_lowercased(self):
        assert tokenize_content("Hello, World! hello") == {"hello", "world"}

    def test_cjk_compounds_and_characters(self):
        tokens = tokenize_content("机器学习")
        assert "机器学习" in tokens
        assert {"机", "器", "学", "习"} <= tokens

    def test_long_cjk_run_splits_into_chunks(self):
        tokens = tokenize_content("深度学习模型")
        # non-overlapping runs of up to four characters
        assert "深度学习" in tokens
        assert "模型" in tokens

    def test_mixed_text(self):
        tokens = tokenize_content("Rust 所有权 model")
        assert {"rust", "model", "所有权", "所", "有", "权"} == tokens

    def test_idempotent(self):
        text = "Graph 数据库 queries"
        assert tokenize_content(text) == tokenize_content(text)


class TestTitleTokens:

    def test_example_titles(self):
        assert tokenize_title("Rust Memory Model") == {"rust", "memory", "model"}
        assert tokenize_title("Rust Ownership Model") == {"rust", "ownership", "model"}

    def test_digits_and_punctuation_dropped(self):
        assert tokenize_title("2024-05 Weekly_Review (draft)") == {"weekly", "review", "draft"}

    def test_cjk_title_keeps_word_and_characters(self):
        assert tokenize_title("读书笔记") == {"读书笔记", "读", "书", "笔", "记"}

    def test_mixed_title(self):
        assert tokenize_title("Python 装饰器") == {"python", "装饰器", "装", "饰", "器"}

    def test_cjk_glued_to_latin(self):
        assert tokenize_title("api设计") == {"api设计", "设", "计"}

    def test_empty_title(self):
        assert tokenize_title("") == set()
        assert tokenize_title("2024 - 01") == set()
