"""
Prompt Gateway - Core Module

Mediates every prompt a user sends to an external LLM vendor:

- Resolve the requested model id (aliases, catalog keys, retired ids)
- Check the subscription plan is entitled to the model
- Meter monthly prompt and enhancement quotas
- Dispatch to OpenAI, Anthropic, Google, DeepSeek, Mistral, Meta or Cohere
- Sanitize vendor errors before they reach the caller
- Rewrite and score prompts through a provider fallback chain
"""
