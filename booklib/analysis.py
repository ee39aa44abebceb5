"""
Text analyzers that turn a book into a short plain-text report.

Each analyzer is a small class with a single entry point taking a ``Book``.
Tokenization uses ``\\w+`` so Arabic and Latin text both work.
"""

from __future__ import annotations

import math
import re
from collections import Counter
from typing import Callable, Dict, List, Protocol

from booklib.types import AnalysisMethod, Book, ordered_pages

TOKEN_PATTERN = re.compile(r"\w+", re.UNICODE)
TOP_N = 10


class Analyzer(Protocol):
    def analyze(self, book: Book) -> str:
        ...


def tokenize(text: str) -> List[str]:
    return [token.lower() for token in TOKEN_PATTERN.findall(text or "") if not token.isdigit()]


def page_tokens(book: Book) -> List[List[str]]:
    return [tokenize(page.content) for page in ordered_pages(book.pages)]


def _format(header: str, rows: List[tuple[str, float]]) -> str:
    if not rows:
        return f"{header}\n(no terms)"
    lines = [header]
    for rank, (term, score) in enumerate(rows, start=1):
        lines.append(f"{rank}. {term}: {score:.4f}")
    return "\n".join(lines)


class TfIdfAnalyzer:
    """Pages are treated as documents."""

    def analyze(self, book: Book) -> str:
        docs = [tokens for tokens in page_tokens(book) if tokens]
        doc_freq: Counter = Counter()
        for tokens in docs:
            doc_freq.update(set(tokens))

        scores: Counter = Counter()
        for tokens in docs:
            counts = Counter(tokens)
            for term, count in counts.items():
                idf = math.log((1 + len(docs)) / (1 + doc_freq[term])) + 1
                scores[term] += (count / len(tokens)) * idf
        return _format(f"TF-IDF for '{book.title}'", scores.most_common(TOP_N))


class PmiAnalyzer:
    """Pointwise mutual information of adjacent word pairs."""

    min_count = 2

    def analyze(self, book: Book) -> str:
        unigrams: Counter = Counter()
        bigrams: Counter = Counter()
        for tokens in page_tokens(book):
            unigrams.update(tokens)
            bigrams.update(zip(tokens, tokens[1:]))

        total_uni = sum(unigrams.values())
        total_bi = sum(bigrams.values())
        rows = []
        for (first, second), count in bigrams.items():
            if count < self.min_count:
                continue
            p_pair = count / total_bi
            p_first = unigrams[first] / total_uni
            p_second = unigrams[second] / total_uni
            rows.append((f"{first} {second}", math.log2(p_pair / (p_first * p_second))))
        rows.sort(key=lambda row: (-row[1], row[0]))
        return _format(f"PMI for '{book.title}'", rows[:TOP_N])


class PklAnalyzer:
    """Terms whose page distribution diverges most from the whole book."""

    def analyze(self, book: Book) -> str:
        pages = page_tokens(book)
        book_counts: Counter = Counter()
        for tokens in pages:
            book_counts.update(tokens)
        book_total = sum(book_counts.values())

        scores: Dict[str, float] = {}
        for tokens in pages:
            if not tokens:
                continue
            counts = Counter(tokens)
            for term, count in counts.items():
                p_page = count / len(tokens)
                p_book = book_counts[term] / book_total
                score = p_page * math.log(p_page / p_book)
                scores[term] = max(scores.get(term, score), score)
        rows = sorted(scores.items(), key=lambda row: (-row[1], row[0]))
        return _format(f"PKL for '{book.title}'", rows[:TOP_N])


class QualityPhraseMiner:
    """Frequent two and three word phrases, longer phrases weighted up."""

    min_count = 2
    max_length = 3

    def analyze(self, book: Book) -> str:
        phrases: Counter = Counter()
        for tokens in page_tokens(book):
            for size in range(2, self.max_length + 1):
                for start in range(len(tokens) - size + 1):
                    phrases[" ".join(tokens[start:start + size])] += 1

        rows = [
            (phrase, float(count * len(phrase.split())))
            for phrase, count in phrases.items()
            if count >= self.min_count
        ]
        rows.sort(key=lambda row: (-row[1], row[0]))
        return _format(f"Quality phrases for '{book.title}'", rows[:TOP_N])


DEFAULT_ANALYZERS: Dict[AnalysisMethod, Callable[[], Analyzer]] = {
    AnalysisMethod.QUALITY_PHRASES: QualityPhraseMiner,
    AnalysisMethod.PMI: PmiAnalyzer,
    AnalysisMethod.PKL: PklAnalyzer,
    AnalysisMethod.TF_IDF: TfIdfAnalyzer,
}
