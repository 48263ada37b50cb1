"""LLM service module.

Provides the language model abstraction layer supporting multiple providers
(Ollama, Google Gemini, NVIDIA, custom endpoints).

Key modules:
- llm.py: Provider factory and the generation backend used by the quiz pipeline
- json_extract.py: Recovering the JSON object from free-form model output
"""
