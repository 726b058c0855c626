#!/usr/bin/env python3
"""
Text utilities for building corpora.

Common functions for cleaning raw text and counting character n-grams
(single characters, pairs and triples) within words.
"""

import re
from typing import List, Dict, Optional
from collections import Counter


# Punctuation that commonly lives on the 30-key block
DEFAULT_PUNCTUATION = ".,;'/-"


def clean_text_for_analysis(text: str,
                            preserve_case: bool = False,
                            preserve_numbers: bool = False,
                            punctuation: Optional[str] = DEFAULT_PUNCTUATION) -> str:
    """
    Clean text for corpus analysis.

    Letters of any script are kept. Every other character is replaced by a
    space so that n-grams never cross the removed character.

    Args:
        text: Input text to clean
        preserve_case: If True, maintain original case
        preserve_numbers: If True, keep numeric characters
        punctuation: Punctuation characters to keep (None or '' = none)

    Returns:
        Cleaned text with single spaces between words
    """
    if not text:
        return ""

    cleaned = text if preserve_case else text.lower()
    keep_punctuation = set(punctuation or '')

    # Filter characters
    filtered_chars = []
    for char in cleaned:
        if char.isalpha() or (preserve_numbers and char.isdigit()) or char in keep_punctuation:
            filtered_chars.append(char)
        elif filtered_chars and filtered_chars[-1] != ' ':
            # Replace non-kept characters with space to maintain word boundaries
            filtered_chars.append(' ')

    # Join and normalize whitespace
    result = ''.join(filtered_chars)
    result = re.sub(r'\s+', ' ', result).strip()

    return result


def extract_ngrams(text: str, n: int) -> List[str]:
    """
    Extract consecutive character n-grams from cleaned text within words.

    Args:
        text: Cleaned text (see clean_text_for_analysis)
        n: N-gram length (1, 2 or 3)

    Returns:
        List of n-gram strings in text order
    """
    if n < 1:
        raise ValueError(f"N-gram length must be positive: {n}")

    ngrams = []
    for word in text.split():
        if len(word) < n:
            continue
        for i in range(len(word) - n + 1):
            ngrams.append(word[i:i + n])

    return ngrams


def get_ngram_frequencies(text: str,
                          n: int,
                          normalize: bool = True,
                          **clean_options) -> Dict[str, float]:
    """
    Calculate n-gram frequencies in text.

    Args:
        text: Raw input text
        n: N-gram length
        normalize: If True, return frequencies as proportions (sum to 1)
        **clean_options: Passed through to clean_text_for_analysis

    Returns:
        Dictionary mapping n-gram strings to frequencies, most common first
    """
    ngrams = extract_ngrams(clean_text_for_analysis(text, **clean_options), n)

    if not ngrams:
        return {}

    counts = Counter(ngrams)
    ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))

    if normalize:
        total = len(ngrams)
        return {ngram: count / total for ngram, count in ordered}
    else:
        return {ngram: float(count) for ngram, count in ordered}


def validate_text_input(text: str,
                        min_length: int = 2,
                        min_unique_chars: int = 1) -> List[str]:
    """
    Validate text input for corpus building.

    Args:
        text: Input text to validate
        min_length: Minimum text length required
        min_unique_chars: Minimum number of unique characters required

    Returns:
        List of validation issues (empty if valid)
    """
    issues = []

    if not text:
        issues.append("Text is empty")
        return issues

    chars_only = clean_text_for_analysis(text).replace(' ', '')

    if len(chars_only) < min_length:
        issues.append(f"Text too short: {len(chars_only)} characters (minimum {min_length})")

    unique_chars = len(set(chars_only))
    if unique_chars < min_unique_chars:
        issues.append(f"Too few unique characters: {unique_chars} (minimum {min_unique_chars})")

    return issues
