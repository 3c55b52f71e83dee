#!/usr/bin/env python
"""Score the input tokens of a text with a HuggingFace causal LM.

Runs the model once over the whole text, keeps the logits of every position
and prints each token's log-probability given the tokens before it. With no
arguments, compares an easy sentence against a difficult one: the difficult
text should come out with a clearly higher perplexity.
"""

import argparse
import logging
import sys
sys.path.insert(0, 'src')

import torch
from transformers import AutoModelForCausalLM, AutoTokenizer

from input_logprobs import LogitScorer, LogprobReport, ScorerConfig, TokenRun

logger = logging.getLogger("score_text")

EASY_TEXT = "The quick brown fox jumps over the lazy dog. The sun is shining and the sky is blue."
DIFFICULT_TEXT = (
    "The epistemological foundations of the metaphysical dichotomy between subject "
    "and object necessitate a transcendental deduction of the categories of "
    "understanding, lest the manifold of intuition remain a chaotic aggregate of "
    "disparate sensations devoid of synthetic unity."
)


def load_model(model_name: str):
    """Load a causal LM and tokenizer from HuggingFace."""
    tokenizer = AutoTokenizer.from_pretrained(model_name)
    model = AutoModelForCausalLM.from_pretrained(model_name)
    model.eval()
    return model, tokenizer


def score_text(model, tokenizer, scorer: LogitScorer, text: str) -> LogprobReport:
    """Run the model on text and build a per-token report."""
    token_ids = tokenizer(text, add_special_tokens=False)["input_ids"]
    with torch.no_grad():
        outputs = model(torch.tensor([token_ids]))

    logits = outputs.logits[0]  # [positions, vocab_size]
    logger.info("Scoring %d tokens (vocab_size=%d)", len(token_ids), logits.shape[-1])
    logprobs = scorer.score(logits, [TokenRun(token_ids)], vocab_size=logits.shape[-1])
    tokens = [tokenizer.decode([t]) for t in token_ids]
    return LogprobReport.build(text, logprobs, tokens)


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("text", nargs="*", help="Texts to score (default: easy vs difficult)")
    parser.add_argument("--model", default="EleutherAI/pythia-160m-deduped")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    model, tokenizer = load_model(args.model)
    scorer = LogitScorer(ScorerConfig.from_env())

    texts = args.text or [EASY_TEXT, DIFFICULT_TEXT]
    for text in texts:
        print(f"\n{'='*60}")
        report = score_text(model, tokenizer, scorer, text)
        report.print_report()


if __name__ == "__main__":
    main()
