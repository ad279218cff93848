"""FlowAI: natural-language automation requests to plans and Google Apps Script."""
