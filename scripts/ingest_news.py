import asyncio
import os
import sys

# Ensure src is in pythonpath
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from dotenv import load_dotenv
load_dotenv()

from news_rag_server.container import build_container
from news_rag_server.main import configure_logging


async def main():
    configure_logging()

    print("Initializing services...")
    services = build_container()
    await services.kv.init()

    try:
        loaded = await services.index.reload()
        print(f"Loaded {loaded} existing articles.")

        print("Ingesting news feeds (this may take time)...")
        result = await services.ingestor.ingest()
        print(f"Processed {result.count}/{result.total} articles in {result.batches} batches.")

        stats = await services.index.stats()
        print(stats.model_dump_json(by_alias=True, indent=2))
    finally:
        await services.kv.close()

    print("Done! Index updated.")

if __name__ == "__main__":
    asyncio.run(main())
