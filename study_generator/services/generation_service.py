"""Study material generation through a forced Gemini function call.

The model is given one function, ``generate_study_materials``, whose JSON
schema lists exactly the requested content types. The function-call
arguments are then validated item by item so callers only ever see
well-formed sections.
"""

import json

from . import prompt_registry

FUNCTION_NAME = 'generate_study_materials'
MAX_SOURCE_TEXT_LEN = 120000
MAX_TEXT_LEN = 2000
MAX_LONG_TEXT_LEN = 8000
MAX_ITEMS_PER_SECTION = 50
MCQ_OPTION_COUNT = 4

CONTENT_OPTIONS = (
    'summary',
    'flashcards',
    'mcqs',
    'trueFalse',
    'definitions',
    'kidsExplanation',
    'professionalExplanation',
)

OPTION_SCHEMAS = {
    'summary': {
        'type': 'string',
        'description': 'A concise summary (150-200 words) capturing the main ideas',
    },
    'flashcards': {
        'type': 'array',
        'description': '10-15 flashcards for active recall',
        'items': {
            'type': 'object',
            'properties': {
                'question': {'type': 'string'},
                'answer': {'type': 'string'},
            },
            'required': ['question', 'answer'],
        },
    },
    'mcqs': {
        'type': 'array',
        'description': '10-15 multiple choice questions with 4 options each',
        'items': {
            'type': 'object',
            'properties': {
                'question': {'type': 'string'},
                'options': {
                    'type': 'array',
                    'items': {'type': 'string'},
                    'minItems': MCQ_OPTION_COUNT,
                    'maxItems': MCQ_OPTION_COUNT,
                },
                'correctAnswer': {
                    'type': 'integer',
                    'description': 'Index of the correct answer (0-3)',
                    'minimum': 0,
                    'maximum': MCQ_OPTION_COUNT - 1,
                },
            },
            'required': ['question', 'options', 'correctAnswer'],
        },
    },
    'trueFalse': {
        'type': 'array',
        'description': '10 true/false statements',
        'items': {
            'type': 'object',
            'properties': {
                'statement': {'type': 'string'},
                'answer': {'type': 'boolean'},
            },
            'required': ['statement', 'answer'],
        },
    },
    'definitions': {
        'type': 'array',
        'description': '10 important terms with definitions',
        'items': {
            'type': 'object',
            'properties': {
                'term': {'type': 'string'},
                'definition': {'type': 'string'},
            },
            'required': ['term', 'definition'],
        },
    },
    'kidsExplanation': {
        'type': 'string',
        'description': 'A simple, child-friendly explanation (100-150 words)',
    },
    'professionalExplanation': {
        'type': 'string',
        'description': 'A detailed, professional explanation (150-200 words)',
    },
}


class GenerationError(RuntimeError):
    """Generation failure carrying the HTTP status the API should answer with."""

    def __init__(self, message, status_code=500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def parse_requested_options(raw_value):
    """Known option ids in request order, without duplicates."""
    if not isinstance(raw_value, (list, tuple)):
        return []
    selected = []
    for item in raw_value:
        option = str(item or '').strip()
        if option in CONTENT_OPTIONS and option not in selected:
            selected.append(option)
    return selected


def build_parameters_schema(options):
    properties = {}
    required = []
    for option in options:
        schema = OPTION_SCHEMAS.get(option)
        if schema:
            properties[option] = schema
            required.append(option)
    return {
        'type': 'object',
        'properties': properties,
        'required': required,
    }


def extract_json_payload(raw_text):
    if not raw_text:
        return None
    text = raw_text.strip()
    if text.startswith('```'):
        lines = text.splitlines()
        if len(lines) >= 3 and lines[0].startswith('```') and lines[-1].strip() == '```':
            text = '\n'.join(lines[1:-1]).strip()
    start = text.find('{')
    if start == -1:
        return None
    decoder = json.JSONDecoder()
    try:
        parsed, _ = decoder.raw_decode(text[start:])
        return parsed
    except json.JSONDecodeError:
        end = text.rfind('}')
        if end == -1 or end <= start:
            return None
        try:
            return json.loads(text[start:end + 1])
        except json.JSONDecodeError:
            return None


def _clean_text(value, max_len=MAX_TEXT_LEN):
    if value is None or isinstance(value, (dict, list)):
        return ''
    return str(value).strip()[:max_len]


def sanitize_text_section(value):
    return _clean_text(value, MAX_LONG_TEXT_LEN)


def sanitize_flashcards(items, max_items=MAX_ITEMS_PER_SECTION):
    if not isinstance(items, list):
        return []
    cleaned = []
    seen = set()
    for item in items:
        if not isinstance(item, dict):
            continue
        question = _clean_text(item.get('question'))
        answer = _clean_text(item.get('answer'))
        if not question or not answer:
            continue
        key = (question.lower(), answer.lower())
        if key in seen:
            continue
        seen.add(key)
        cleaned.append({'question': question, 'answer': answer})
        if len(cleaned) >= max_items:
            break
    return cleaned


def _parse_answer_index(value):
    if isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    if isinstance(value, str):
        value = value.strip()
        if len(value) == 1 and value.upper() in 'ABCD':
            return 'ABCD'.index(value.upper())
        if not value.isdigit():
            return None
        value = int(value)
    if not isinstance(value, int):
        return None
    return value


def sanitize_mcqs(items, max_items=MAX_ITEMS_PER_SECTION):
    """Keep only questions with exactly four distinct options and an index in [0, 3]."""
    if not isinstance(items, list):
        return []
    cleaned = []
    seen = set()
    for item in items:
        if not isinstance(item, dict):
            continue
        question = _clean_text(item.get('question'))
        options = item.get('options')
        if not question or not isinstance(options, list) or len(options) != MCQ_OPTION_COUNT:
            continue
        option_strings = [_clean_text(option) for option in options]
        if any(not option for option in option_strings):
            continue
        if len({option.lower() for option in option_strings}) != MCQ_OPTION_COUNT:
            continue
        correct_answer = _parse_answer_index(item.get('correctAnswer'))
        if correct_answer is None or not 0 <= correct_answer < MCQ_OPTION_COUNT:
            continue
        dedupe_key = question.lower()
        if dedupe_key in seen:
            continue
        seen.add(dedupe_key)
        cleaned.append({
            'question': question,
            'options': option_strings,
            'correctAnswer': correct_answer,
        })
        if len(cleaned) >= max_items:
            break
    return cleaned


def _parse_bool(value):
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {'true', 't', 'yes'}:
            return True
        if lowered in {'false', 'f', 'no'}:
            return False
    return None


def sanitize_true_false(items, max_items=MAX_ITEMS_PER_SECTION):
    if not isinstance(items, list):
        return []
    cleaned = []
    seen = set()
    for item in items:
        if not isinstance(item, dict):
            continue
        statement = _clean_text(item.get('statement'))
        answer = _parse_bool(item.get('answer'))
        if not statement or answer is None:
            continue
        if statement.lower() in seen:
            continue
        seen.add(statement.lower())
        cleaned.append({'statement': statement, 'answer': answer})
        if len(cleaned) >= max_items:
            break
    return cleaned


def sanitize_definitions(items, max_items=MAX_ITEMS_PER_SECTION):
    if not isinstance(items, list):
        return []
    cleaned = []
    seen = set()
    for item in items:
        if not isinstance(item, dict):
            continue
        term = _clean_text(item.get('term'))
        definition = _clean_text(item.get('definition'))
        if not term or not definition:
            continue
        if term.lower() in seen:
            continue
        seen.add(term.lower())
        cleaned.append({'term': term, 'definition': definition})
        if len(cleaned) >= max_items:
            break
    return cleaned


SECTION_SANITIZERS = {
    'summary': sanitize_text_section,
    'flashcards': sanitize_flashcards,
    'mcqs': sanitize_mcqs,
    'trueFalse': sanitize_true_false,
    'definitions': sanitize_definitions,
    'kidsExplanation': sanitize_text_section,
    'professionalExplanation': sanitize_text_section,
}


def shape_generated_content(payload, options):
    """Return a dict holding exactly the requested keys, each validated."""
    payload = payload if isinstance(payload, dict) else {}
    return {option: SECTION_SANITIZERS[option](payload.get(option)) for option in options}


def is_content_empty(content):
    return not any(content.values())


def build_generation_config(types_module, system_prompt, options, max_output_tokens=32768):
    declaration = types_module.FunctionDeclaration(
        name=FUNCTION_NAME,
        description='Generate comprehensive study materials from the provided text',
        parameters_json_schema=build_parameters_schema(options),
    )
    return types_module.GenerateContentConfig(
        system_instruction=system_prompt,
        max_output_tokens=max_output_tokens,
        tools=[types_module.Tool(function_declarations=[declaration])],
        tool_config=types_module.ToolConfig(
            function_calling_config=types_module.FunctionCallingConfig(
                mode='ANY',
                allowed_function_names=[FUNCTION_NAME],
            ),
        ),
        automatic_function_calling=types_module.AutomaticFunctionCallingConfig(disable=True),
    )


def extract_function_arguments(response):
    """Arguments of the forced function call, falling back to JSON in the text body."""
    for call in (getattr(response, 'function_calls', None) or []):
        if getattr(call, 'name', '') == FUNCTION_NAME and isinstance(getattr(call, 'args', None), dict):
            return call.args
    try:
        raw_text = getattr(response, 'text', '') or ''
    except ValueError:
        raw_text = ''
    parsed = extract_json_payload(raw_text)
    return parsed if isinstance(parsed, dict) else None


def map_gateway_error(exc):
    code = getattr(exc, 'code', None)
    status = str(getattr(exc, 'status', '') or '').upper()
    if code == 402 or status == 'PAYMENT_REQUIRED':
        return GenerationError('AI credits depleted. Please add credits to continue.', 402)
    if code == 429 or status == 'RESOURCE_EXHAUSTED':
        return GenerationError('Rate limit exceeded. Please try again in a moment.', 429)
    return GenerationError('AI generation failed', 500)


def generate_study_content(text, difficulty, options, *, client, types_module, model, logger=None):
    """Call the model and return ``(content, warning)``; raises GenerationError."""
    if client is None:
        raise GenerationError('AI service not configured', 500)
    source_text = str(text or '')
    warning = None
    if len(source_text) > MAX_SOURCE_TEXT_LEN:
        source_text = source_text[:MAX_SOURCE_TEXT_LEN]
        warning = 'Source text was very long and was truncated before generation.'

    system_prompt = prompt_registry.build_study_system_prompt(difficulty, options)
    try:
        response = client.models.generate_content(
            model=model,
            contents=[types_module.Content(role='user', parts=[types_module.Part.from_text(text=source_text)])],
            config=build_generation_config(types_module, system_prompt, options),
        )
    except Exception as exc:
        if logger is not None:
            logger.error(f"AI gateway error: {exc}")
        raise map_gateway_error(exc) from exc

    arguments = extract_function_arguments(response)
    if arguments is None:
        if logger is not None:
            logger.error('Invalid AI response format: no function call or JSON payload')
        raise GenerationError('Invalid AI response format', 500)

    content = shape_generated_content(arguments, options)
    if is_content_empty(content):
        raise GenerationError('Study materials were empty after validation.', 502)
    return content, warning
