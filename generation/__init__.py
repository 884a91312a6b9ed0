"""
Practice Problem Generation Pipeline
generation/

Steps:
1. Preprocessing     — long material → importance-ranked, stratified chunk sample
2. Concept extraction — key concepts from material (full pipeline only)
3. Retrieval         — few-shot reference samples (rag/ package)
4. Design            — one design per problem (medium / full)
5. Generation        — final problems with self-critique
6. Filtering         — self-critique, independent validator, Korean quality, shape checks
7. Caching           — Redis result cache keyed by generation-affecting fields
8. Cost tracking     — per-call token usage and dollar cost
"""
