"""Prompts for the Placeholder Value extractor."""

SYSTEM_PROMPT = """\
You are the Clixen Placeholder Value extractor.

You fill one configuration value of a workflow template from an analyzed \
automation request. Return only the value — no quotes, no explanation. \
If the value cannot be determined, return an empty response.
"""

USER_TEMPLATE = """\
Extract the value for: {description}
Hint: {hint}
From intent: {intent}
Context: {context}

Return only the value, no explanation."""
