"""BuildBid - Cloud Functions.

Builder quote submission, validation, lifecycle, distribution and
comparison for construction scopes of work (SoW).

Layout:
- models: Pydantic quote, distribution, communication and comparison models
- validators: Quote validation rules (NRM2, timeline, payment schedule)
- services: Calculators, lifecycle, comparison engine, document store, QuoteService
- main: HTTP entry points
"""

__version__ = "1.0.0"
