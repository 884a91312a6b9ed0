"""
RAG package — reference problem samples for few-shot prompting

  hierarchy.py      static domain → subcategory → technology tree
  sample_store.py   Postgres rows + Qdrant vectors for ProblemSample
  retrieval.py      hybrid keyword/vector search with RRF and fallback
  auto_generate.py  bootstrap missing samples with the model
"""
