"""
Seed reference problem samples into Postgres + Qdrant.

Walks the domain hierarchy and loads, for every node, the matching JSON file
under the samples directory:

    <domain>/general.json                 domain-general samples
    <domain>/<subcat>/general.json        subcategory samples
    <domain>/<subcat>/<tech>.json         technology samples
    <domain>/<subcat>.json                subcategory without technologies

Each file is a JSON array of problems; quality comes from
problem["metadata"]["quality_score"] (default 8). Seeded samples are origin="human".

USAGE:
    python -m scripts.seed_rag_samples [--samples-dir DIR] [--auto] [--dry-run]

OPTIONS:
    --samples-dir DIR   Root of the sample files (default: ./samples)
    --auto              Auto-generate samples for technologies with no file
    --dry-run           List what would be seeded without writing anything
"""

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import List, Tuple

from dotenv import load_dotenv
from tqdm import tqdm

from generation.schemas import ReferenceSample, SeedTarget
from rag.hierarchy import SeedTargetNode, calculate_total_samples, find_parent_category, iter_seed_targets

DEFAULT_QUALITY = 8


def load_seed_file(path: Path, domain: str, subdomain) -> List[ReferenceSample]:
    """Read one sample file into human-origin ReferenceSamples."""
    problems = json.loads(path.read_text(encoding="utf-8"))
    samples = []
    for problem in problems:
        quality = (problem.get("metadata") or {}).get("quality_score") or DEFAULT_QUALITY
        samples.append(ReferenceSample(
            domain=domain,
            subdomain=subdomain,
            problem=problem,
            quality_score=quality,
            origin="human",
            generation=1,
            human_verified=True,
        ))
    return samples


def is_technology(node: SeedTargetNode) -> bool:
    return node.subdomain is not None and find_parent_category(node.subdomain, node.domain) is not None


async def seed_from_files(store, samples_dir: Path, dry_run: bool = False) -> Tuple[int, List[SeedTarget]]:
    """
    Store every sample file found along the hierarchy.

    Returns (samples stored, technologies with no sample file).
    """
    total = 0
    missing: List[SeedTarget] = []
    nodes = list(iter_seed_targets())

    for node in tqdm(nodes, desc="Seeding"):
        path = samples_dir / node.sample_file
        label = f"{node.domain}/{node.subdomain or 'general'}"
        if not path.exists():
            if is_technology(node):
                missing.append(SeedTarget(tech=node.subdomain, domain=node.domain, count=node.count))
            tqdm.write(f"  ⏭️  Skipped {label} (no file)")
            continue

        try:
            samples = load_seed_file(path, node.domain, node.subdomain)
        except (OSError, ValueError, AttributeError) as e:
            tqdm.write(f"  ❌ Failed to read {path}: {e}")
            continue

        if dry_run:
            tqdm.write(f"  [DRY RUN] {label}: {len(samples)} samples")
            total += len(samples)
            continue

        stored = await store.bulk_store_samples(samples)
        total += len(stored)
        tqdm.write(f"  ✅ {label}: {len(stored)}/{len(samples)} samples")

    return total, missing


async def run(args) -> int:
    from openai import AsyncOpenAI
    from qdrant_client import QdrantClient

    from database.database import Base, create_db_engine, create_session_factory
    from embeddings.generator import EmbeddingGenerator
    from embeddings.qdrant_manager import QdrantManager
    from generation.config import PipelineSettings
    from generation.gpt_client import ModelGateway
    from rag.auto_generate import AutoSeeder
    from rag.retrieval import RetrievalEngine
    from rag.sample_store import SampleStore

    settings = PipelineSettings.from_env()
    engine = create_db_engine()
    Base.metadata.create_all(bind=engine)
    openai_client = AsyncOpenAI(api_key=os.getenv("OPENAI_API_KEY"))
    qdrant = QdrantManager(QdrantClient(
        host=os.getenv("QDRANT_HOST", "localhost"),
        port=int(os.getenv("QDRANT_PORT", "6333")),
    ))
    qdrant.ensure_collection()
    store = SampleStore(
        create_session_factory(engine),
        qdrant,
        EmbeddingGenerator(openai_client, model_name=settings.embedding_model),
    )

    try:
        print("=" * 50)
        print(f"RAG SAMPLE SEEDING (hierarchy target: {calculate_total_samples()} samples)")
        print("=" * 50)

        total, missing = await seed_from_files(store, Path(args.samples_dir), dry_run=args.dry_run)
        print(f"\n🎉 Seeding complete! Total: {total} samples")
        if not args.dry_run:
            print(f"   Samples now in store: {await store.count_samples()}")

        if args.auto and missing and not args.dry_run:
            print(f"\nAuto-generating {len(missing)} technologies with no sample file...")
            seeder = AutoSeeder(ModelGateway(openai_client, model=settings.gpt_model), RetrievalEngine(store), store)
            for report in await seeder.bulk_auto_generate(missing):
                status = f"error: {report.error}" if report.error else f"{report.saved}/{report.generated} saved"
                print(f"  {report.tech}: {status}")
        elif missing:
            print(f"\n💡 {len(missing)} technologies have no samples; run with --auto or let them auto-generate on first use.")
        return 0
    finally:
        await openai_client.close()
        engine.dispose()


def main():
    load_dotenv()
    parser = argparse.ArgumentParser(
        description="Seed reference problem samples along the domain hierarchy",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--samples-dir", default="samples", help="Root directory of sample JSON files")
    parser.add_argument("--auto", action="store_true", help="Auto-generate samples for technologies with no file")
    parser.add_argument("--dry-run", action="store_true", help="Show what would be seeded without writing")
    args = parser.parse_args()

    try:
        sys.exit(asyncio.run(run(args)))
    except Exception as e:
        print(f"\n❌ Seeding failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
