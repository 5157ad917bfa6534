"""
Prompts for repair strategies.

Templates are filled with str.format; input excerpts are truncated by the
caller before formatting.
"""
from __future__ import annotations

INPUT_EXCERPT_LIMIT = 1000
ERROR_FIX_EXCERPT_LIMIT = 1500
PARTIAL_INPUT_LIMIT = 2000

SIMPLIFIED_SYSTEM_PROMPT = "You are a {agent_name}. Return concise, valid JSON responses only."

SIMPLIFIED_PROMPTS = {
    "ParserAgent": "Analyze this COBOL code and return basic structure info in JSON:\n{input}",
    "ModernizerAgent": "Convert this legacy code to modern architecture. Return JSON with SQL and API design:\n{input}",
    "ValidatorAgent": "Validate this code and return JSON with validation results:\n{input}",
    "ExplainerAgent": "Explain this code analysis and provide migration recommendations in JSON:\n{input}",
}
SIMPLIFIED_DEFAULT = "Analyze this input and provide structured JSON response:\n{input}"

# (system prompt, user template) per agent
ALTERNATIVE_PROMPTS = {
    "ParserAgent": (
        "You are a COBOL code analyzer. Focus on basic structure extraction.",
        "Extract key information from this code:\n"
        "1. Program name\n"
        "2. Main sections\n"
        "3. Data structures\n\n"
        "Code:\n{input}",
    ),
    "ModernizerAgent": (
        "You are a legacy code modernization assistant. Create simple, working solutions.",
        "Create a simple modernization plan:\n"
        "1. Database schema\n"
        "2. REST API endpoints\n\n"
        "Legacy code:\n{input}",
    ),
    "ExplainerAgent": (
        "You are a technical documentation assistant. Create clear, concise explanations.",
        "Provide a brief explanation of this code analysis:\n{input}",
    ),
}
ALTERNATIVE_DEFAULT = (
    "You are a helpful assistant. Provide structured, JSON-formatted responses.",
    "Please provide a basic analysis of the following:\n{input}",
)

ERROR_FIX_SYSTEM_PROMPT = (
    "You are an error correction specialist for {agent_name}. Focus on fixing the specific issues."
)

ERROR_FIX_TEMPLATE = """The previous processing failed with these errors: {errors}

Please fix the issues and provide a corrected response for this {agent_name} task:

Input: {input}

Required top-level fields: {required_fields}

Requirements:
1. Address the specific errors mentioned above
2. Return valid JSON format
3. Include confidence score
4. Be conservative in your response

Corrected response:"""

GENERIC_TEMPLATE = "Please provide a basic {agent_name} response for: {input}"
