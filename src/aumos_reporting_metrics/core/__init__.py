"""Calculation engine and business services for reporting metrics.

Modules:
    formulas: Formula union, FormulaDraft, parsing and storage layout
    periods: Granularities, display periods and date-range presets
    merge: Stored-value override merge
    aggregation: Monthly series to display periods
    evaluator: FormulaEvaluator and the dependency graph helpers
    preview: PreviewService and PreviewGate for unsaved formulas
    services: Application services used by the API
"""
