"""
=============================================
GROQ ORACLE - Bet extraction and verification
=============================================
Uses the Groq API (Llama models) to:
1. Read +EV bet tables out of screenshots
2. Sweep the web for fresh +EV lines
3. Verify results of pending positions against search results

Every call is treated as unreliable: the ledger only ever sees what
survives Oracle.parsing.
"""

import asyncio
import base64
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Optional, Union

from duckduckgo_search import DDGS
from groq import Groq
from tenacity import retry, stop_after_attempt, wait_exponential

from quant_ninja.LedgerEngine.models import Bet, GroundingSource, RawObservation
from . import config
from .parsing import (
    ExtractionResult,
    VerificationResult,
    load_json,
    parse_extraction,
    parse_observations,
    parse_verdict,
)

logger = logging.getLogger("GroqOracle")

ImageInput = Union[bytes, str]

EXTRACTION_PROMPT = """You are an expert sports betting analyst. Analyze this screenshot.

CRITICAL VALIDATION:
Is this image clearly a sports betting dashboard or +EV tool containing a table of bet lines?
A valid dashboard MUST show columns for: Event/Matchup, Market/Line, Odds, and ideally EV%.

DATA EXTRACTION:
1. Scan for rows that represent a +EV bet.
2. Extract: Event, Market, Odds (Decimal), Bookie, and EV% (as a number, e.g. 4.5).
3. Only include bets with a POSITIVE EV.

Respond ONLY with a JSON object:
{"isValid": true, "bets": [{"event": "...", "market": "...", "odds": 2.05, "ev": 4.5, "bookie": "..."}]}
"""


class OracleUnavailableError(RuntimeError):
    """Raised when the oracle cannot be reached at all (e.g. no API key)."""


@retry(
    stop=stop_after_attempt(config.SEARCH_ATTEMPTS),
    wait=wait_exponential(multiplier=1, min=1, max=5),
    reraise=True
)
def _search_with_retry(query: str, max_results: int = config.SEARCH_MAX_RESULTS) -> list[dict]:
    """Web search with automatic retries."""
    with DDGS() as ddgs:
        return list(ddgs.text(query, max_results=max_results))


def _sources_from_results(results: list[dict]) -> list[GroundingSource]:
    sources = []
    for r in results:
        uri = r.get("href") or r.get("url")
        if uri:
            sources.append(GroundingSource(title=r.get("title"), uri=uri))
    return sources


def _format_results(results: list[dict]) -> str:
    lines = []
    for r in results:
        body = (r.get("body") or r.get("snippet") or "")[:300]
        lines.append(f"- {r.get('title', 'Untitled')} ({r.get('href', '')}): {body}")
    return "\n".join(lines) if lines else "No search results."


def _image_url(image: ImageInput) -> str:
    if isinstance(image, bytes):
        return f"data:image/jpeg;base64,{base64.b64encode(image).decode('ascii')}"
    if image.startswith("data:"):
        return image
    return f"data:image/jpeg;base64,{image}"


class GroqOracle:
    """
    Vision / search oracle backed by Groq.
    Implements rate limiting; blocking SDK calls run in the default executor.
    """

    def __init__(self, api_key: Optional[str] = None, text_model: str = config.TEXT_MODEL,
                 vision_model: str = config.VISION_MODEL, client: Optional[Groq] = None):
        self.api_key = api_key or config.GROQ_API_KEY
        if client is None and not self.api_key:
            raise OracleUnavailableError("GROQ_API_KEY not found. Set it in environment or pass directly.")

        self.client = client or Groq(api_key=self.api_key)
        self.text_model = text_model
        self.vision_model = vision_model
        self.last_call_time = 0.0
        self.min_delay_ms = config.MIN_DELAY_MS
        self._rate_lock = threading.Lock()

    def _rate_limit(self):
        """Ensure we don't exceed Groq's rate limits, even across executor threads."""
        with self._rate_lock:
            elapsed = (time.time() - self.last_call_time) * 1000
            if elapsed < self.min_delay_ms:
                time.sleep((self.min_delay_ms - elapsed) / 1000)
            self.last_call_time = time.time()

    def _complete(self, model: str, messages: list[dict], max_tokens: int,
                  temperature: float = 0.2, json_mode: bool = False) -> str:
        self._rate_limit()
        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        completion = self.client.chat.completions.create(
            model=model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
            **kwargs
        )
        return completion.choices[0].message.content.strip() if completion.choices else ""

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------
    def _extract_sync(self, image: ImageInput) -> ExtractionResult:
        observed_at = datetime.now(timezone.utc)
        try:
            text = self._complete(
                self.vision_model,
                [{
                    "role": "user",
                    "content": [
                        {"type": "text", "text": EXTRACTION_PROMPT},
                        {"type": "image_url", "image_url": {"url": _image_url(image)}},
                    ],
                }],
                max_tokens=config.EXTRACTION_MAX_TOKENS,
                json_mode=True,
            )
        except Exception as e:
            logger.warning(f"Vision extraction failed: {e}")
            return ExtractionResult(valid=False)

        result = parse_extraction(text, observed_at=observed_at)
        logger.info(f"Extraction: valid={result.valid} candidates={len(result.candidates)} rejected={result.rejected}")
        return result

    async def extract_candidates(self, image: ImageInput) -> ExtractionResult:
        """Read a screenshot; invalid sources come back as valid=False, never raise."""
        return await self._run(self._extract_sync, image)

    # ------------------------------------------------------------------
    # Web sync
    # ------------------------------------------------------------------
    def _search_sync(self) -> list[RawObservation]:
        now = datetime.now(timezone.utc)
        try:
            results = _search_with_retry("positive EV sports bets today odds +EV picks")
        except Exception as e:
            logger.warning(f"Web sweep search failed: {e}")
            return []

        prompt = f"""CURRENT TIMESTAMP: {now.isoformat()}

TASK: From the search results below, list LIVE or UPCOMING +EV (Positive Expected Value) sports bets.

STRICT TEMPORAL FILTERING:
- DISCARD any bet for a game that has already started or finished.
- Only return bets that can be placed IMMEDIATELY for FUTURE events.

SEARCH RESULTS:
{_format_results(results)}

Respond ONLY with a JSON object:
{{"bets": [{{"event": "...", "market": "...", "odds": 2.05, "bookie": "...", "ev": 3.1}}]}}
"""
        try:
            text = self._complete(
                self.text_model,
                [
                    {"role": "system", "content": "You are a betting market scanner. Respond ONLY with valid JSON."},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=config.EXTRACTION_MAX_TOKENS,
                json_mode=True,
            )
        except Exception as e:
            logger.warning(f"Web sweep summarization failed: {e}")
            return []

        candidates, _ = parse_observations(load_json(text), observed_at=now, sources=_sources_from_results(results))
        return candidates

    async def search_candidates(self) -> list[RawObservation]:
        return await self._run(self._search_sync)

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------
    def _verify_sync(self, bet: Bet) -> VerificationResult:
        placed = bet.created_at.strftime("%Y-%m-%d")
        results = _search_with_retry(f"{bet.event} {bet.market} result {placed}")
        sources = _sources_from_results(results)

        prompt = f"""Verify result for: "{bet.market}" in "{bet.event}" from {placed}.

SEARCH RESULTS:
{_format_results(results)}

Return format: WON | details OR LOST | details.
If game not finished: PENDING.
"""
        text = self._complete(
            self.text_model,
            [
                {"role": "system", "content": "You are a concise sports results checker. Always start with WON, LOST or PENDING."},
                {"role": "user", "content": prompt},
            ],
            max_tokens=config.VERIFICATION_MAX_TOKENS,
            temperature=0.0,
        )
        return parse_verdict(text, sources=sources)

    async def verify_outcome(self, bet: Bet) -> VerificationResult:
        """May raise; the caller treats failures as inconclusive."""
        return await self._run(self._verify_sync, bet)

    # ------------------------------------------------------------------
    # Pass-through features
    # ------------------------------------------------------------------
    def _analyze_sync(self, image: ImageInput, prompt: str) -> str:
        try:
            text = self._complete(
                self.vision_model,
                [{
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {"type": "image_url", "image_url": {"url": _image_url(image)}},
                    ],
                }],
                max_tokens=800,
                temperature=0.5,
            )
        except Exception as e:
            logger.error(f"Image analysis error: {e}")
            return "Analysis failed. Please check your connection and API key."
        return text or "No analysis could be generated for this image."

    async def analyze_image(self, image: ImageInput, prompt: str) -> str:
        return await self._run(self._analyze_sync, image, prompt)

    def _chat_sync(self, prompt: str, history: list[dict]) -> str:
        messages = [{"role": m["role"], "content": m["content"]} for m in history]
        messages.append({"role": "user", "content": prompt})
        return self._complete(self.text_model, messages, max_tokens=1024, temperature=0.7)

    async def chat(self, prompt: str, history: Optional[list[dict]] = None) -> str:
        return await self._run(self._chat_sync, prompt, history or [])


# Singleton instance for easy import
_oracle_instance: Optional[GroqOracle] = None


def get_oracle() -> GroqOracle:
    """Get or create the singleton GroqOracle instance."""
    global _oracle_instance
    if _oracle_instance is None:
        _oracle_instance = GroqOracle()
    return _oracle_instance
