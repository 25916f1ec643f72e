"""Question data model and question-bank loading."""
