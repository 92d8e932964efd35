import json
import logging
import re

import json5
import demjson3

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.DOTALL)


def _strip_fences(text: str) -> str:
    match = _FENCE_RE.match(text)
    return match.group(1) if match else text


def _outermost_object(text: str) -> str:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise ValueError("No JSON object found in response")
    return text[start : end + 1]


# JSON Repair and Parsing Function
def repair_and_parse_json(response_text: str) -> dict:
    """
    Multi-layered JSON parsing with auto-repair capabilities.

    Attempts to parse JSON through multiple strategies:
    1. Standard json.loads() (after removing markdown fences)
    2. Clean common issues (trailing commas, comments)
    3. json5 parser (tolerates comments and trailing commas)
    4. demjson3 parser (auto-repairs many errors)
    5. Re-run layers 1-4 on the outermost {...} block of the text

    Args:
        response_text: Raw text response from Claude

    Returns:
        Parsed dictionary

    Raises:
        ValueError: If all parsing attempts fail or the JSON is not an object
    """
    if not response_text or not response_text.strip():
        raise ValueError("Empty response, nothing to parse")

    text = _strip_fences(response_text)
    errors = []

    result = _parse_layers(text, errors)
    if result is None:
        # Layer 5: prose around the object ("Here is the analysis: {...}")
        try:
            logger.info("🔧 Layer 5: Extracting outermost JSON object...")
            result = _parse_layers(_outermost_object(text), errors)
        except ValueError as e:
            errors.append(f"Extraction: {str(e)}")

    if result is None:
        logger.error(f"❌ JSON parsing failed. Response preview: {response_text[:200]}...")
        raise ValueError(
            f"Failed to parse JSON after all attempts. Errors: {'; '.join(errors[:2])}"
        )
    if not isinstance(result, dict):
        raise ValueError(f"Expected a JSON object, got {type(result).__name__}")
    return result


def _parse_layers(text: str, errors: list):
    # Layer 1: Try standard JSON parser first
    try:
        result = json.loads(text)
        logger.debug("✅ Layer 1: Standard JSON parsing succeeded!")
        return result
    except json.JSONDecodeError as e:
        errors.append(f"Standard JSON: {str(e)}")

    # Layer 2: Clean common Claude JSON mistakes
    try:
        cleaned = re.sub(r",(\s*[}\]])", r"\1", text)
        cleaned = re.sub(r"(?m)^\s*//.*$", "", cleaned)
        cleaned = re.sub(r"/\*.*?\*/", "", cleaned, flags=re.DOTALL)
        result = json.loads(cleaned)
        logger.info("✅ Layer 2: Cleaned JSON parsing succeeded!")
        return result
    except json.JSONDecodeError as e:
        errors.append(f"Cleaned JSON: {str(e)}")

    # Layer 3: Try json5 (tolerates trailing commas and comments)
    try:
        result = json5.loads(text)
        logger.info("✅ Layer 3: JSON5 parsing succeeded!")
        return result
    except Exception as e:
        errors.append(f"JSON5: {str(e)}")

    # Layer 4: Try demjson3 (auto-repairs many JSON errors)
    try:
        result = demjson3.decode(text)
        logger.info("✅ Layer 4: DemJSON parsing succeeded!")
        return result
    except Exception as e:
        errors.append(f"DemJSON: {str(e)}")

    logger.warning(f"⚠️ JSON layers 1-4 failed: {'; '.join(errors[-4:])}")
    return None
