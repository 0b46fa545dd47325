from impact_ledger.domain.values import VALUE_CATEGORIES

_CATEGORY_NAMES = ", ".join(category.name for category in VALUE_CATEGORIES)

TRANSACTION_ANALYSIS_PROMPT = f"""
Objective: Evaluate the societal debt (ethical impact) of financial transactions based on
the percentage of a merchant's income spent on specific practices.

Instructions:
* Assign "unethicalPractices" and "ethicalPractices" using relevant industry knowledge
  (e.g. Factory Farming: 40-90%, Labor Exploitation: 20-70%).
* If a merchant appears to be a small, local or independent business, assign the ethical
  practice "Supports Small Business" with a weight of 10-25% in "Community Support".
* Assign "practiceWeights" (0-100) reflecting the share of the spend attributable to each practice.
* If uncertain about a merchant or practice, assign NO practices.
* REQUIRED: every result MUST echo the "transactionId" it was given.
* Provide concise "information" per practice justifying the weight.
* Provide "citations" mapping each practice to an ARRAY of independent, publicly accessible
  source URLs. Use [] rather than an irrelevant or broken link.
* Provide "practiceSearchTerms" for charity lookups (e.g. Factory Farming -> "animal welfare").
* Assign one of these "practiceCategories" to each practice: {_CATEGORY_NAMES}.
* Output MUST be ONLY strict JSON matching the schema below.

{{
  "transactions": [
    {{
      "transactionId": "plaid-abc123",
      "name": "McDonald's",
      "unethicalPractices": ["Factory Farming", "High Emissions"],
      "ethicalPractices": [],
      "practiceWeights": {{"Factory Farming": 75, "High Emissions": 25}},
      "practiceSearchTerms": {{"Factory Farming": "animal welfare", "High Emissions": "climate"}},
      "practiceCategories": {{"Factory Farming": "Animal Welfare", "High Emissions": "Environment"}},
      "information": {{"Factory Farming": "...", "High Emissions": "..."}},
      "citations": {{"Factory Farming": ["https://..."], "High Emissions": []}}
    }}
  ]
}}
""".strip()
