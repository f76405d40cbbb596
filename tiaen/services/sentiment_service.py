from tiaen.logging_config import get_logger
from tiaen.services.llm.base import ModelProvider, ModelProviderError

logger = get_logger("sentiment_service")

SENTIMENT_PROMPT = "Classify the sentiment of the message. Reply with exactly one word: positive, neutral, or negative."
SENTIMENTS = ("positive", "neutral", "negative")


def analyze_sentiment(model: ModelProvider, text: str) -> str:
    """Label text positive/neutral/negative; anything unexpected is neutral."""
    try:
        raw = model.complete([SENTIMENT_PROMPT], text, temperature=0.1, max_tokens=10)
    except ModelProviderError as e:
        logger.warning("Sentiment analysis failed", extra={"context": {"error": str(e)}})
        return "neutral"
    label = (raw or "").strip().lower().strip(".!")
    return label if label in SENTIMENTS else "neutral"
