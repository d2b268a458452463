"""docpipe CLI - inspect, chunk, patch and index documents."""

from __future__ import annotations

import json
import os
import sys

import click


def _load_config(path: str | None):
    from docpipe.pipeline.config import Config

    if path and os.path.exists(path):
        return Config.from_yaml(path)
    if path:
        click.echo(f"Config file not found: {path}, using environment", err=True)
    return Config.from_env()


def _load_record(path: str):
    """Read a document file holding either a bare tree or a document record."""
    from docpipe.domain.document import DocumentRecord
    from docpipe.serialization.json_codec import parse_document

    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if isinstance(data, dict) and ("json_content" in data or "id" in data):
        return DocumentRecord.from_dict(data)
    return DocumentRecord(id=os.path.basename(path), title="", content=parse_document(data))


@click.group()
def cli():
    """docpipe - document content pipeline."""
    pass


@cli.command()
@click.argument("document", type=click.Path(exists=True, dir_okay=False))
def sections(document: str):
    """Print the heading sections of a document."""
    from docpipe.pipeline.sections import extract_sections

    try:
        record = _load_record(document)
        for section in extract_sections(record.content):
            click.echo(
                json.dumps(
                    {
                        "breadcrumb": section.breadcrumb,
                        "level": section.level,
                        "start": section.start_node_index,
                        "end": section.end_node_index,
                        "breadcrumb_hash": section.breadcrumb_hash,
                    },
                    ensure_ascii=False,
                )
            )
    except Exception as e:
        click.echo(f"✗ Section extraction failed: {e}", err=True)
        raise click.Abort()


@cli.command()
@click.argument("document", type=click.Path(exists=True, dir_okay=False))
@click.option("--config", "-c", default=None, help="Configuration file path")
@click.option(
    "--mode",
    type=click.Choice(["auto", "sections", "simple"]),
    default="auto",
    help="Chunking mode (auto falls back to simple chunking)",
)
def chunk(document: str, config: str | None, mode: str):
    """Print the chunks a document would be embedded as."""
    from docpipe.pipeline.chunk import ChunkingStrategy
    from docpipe.pipeline.embed import EmbeddingOrchestrator
    from docpipe.serialization.text import serialize_to_plain_text

    try:
        cfg = _load_config(config)
        record = _load_record(document)
        chunker = ChunkingStrategy(cfg.chunking)

        if mode == "sections":
            chunks = chunker.generate_paragraph_chunks(record.content)
        elif mode == "simple":
            chunks = chunker.generate_simple_chunks(serialize_to_plain_text(record.content))
        else:
            outcome = EmbeddingOrchestrator(embedder=None, chunker=chunker).generate_chunks(record.content)
            chunks = outcome.chunks
            click.echo(f"mode: {outcome.mode}", err=True)

        for item in chunks:
            click.echo(json.dumps(item.to_dict(), ensure_ascii=False))
    except Exception as e:
        click.echo(f"✗ Chunking failed: {e}", err=True)
        raise click.Abort()


@cli.command()
@click.argument("document", type=click.Path(exists=True, dir_okay=False))
@click.argument("changes", type=click.Path(exists=True, dir_okay=False))
@click.option("--config", "-c", default=None, help="Configuration file path")
@click.option("--output", "-o", default=None, help="Write the patched tree here (default: stdout)")
def apply(document: str, changes: str, config: str | None, output: str | None):
    """Apply a JSON list of search/replace changes to a document."""
    from docpipe.llm import create_llm
    from docpipe.patch import ContentPatcher, create_fallback_matcher
    from docpipe.serialization.json_codec import dump_document

    try:
        cfg = _load_config(config)
        record = _load_record(document)
        with open(changes, "r", encoding="utf-8") as f:
            requests = json.load(f)
        if isinstance(requests, dict):
            requests = requests.get("changes", [])

        llm = create_llm(cfg.llm) if cfg.llm else None
        patcher = ContentPatcher(
            fallback=create_fallback_matcher(cfg.patch, llm),
            config=cfg.patch,
        )
        result = patcher.apply_changes(record.content, requests)
    except Exception as e:
        click.echo(f"✗ Apply failed: {e}", err=True)
        raise click.Abort()

    for outcome in result.outcomes:
        if outcome.error:
            click.echo(f"  change {outcome.index}: {outcome.state.value} ({outcome.error})", err=True)

    mark = "✓" if result.success else "✗"
    click.echo(f"{mark} {result.summary()}", err=True)

    payload = json.dumps(dump_document(record.content), ensure_ascii=False, indent=2)
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(payload + "\n")
    else:
        click.echo(payload)

    if not result.success:
        sys.exit(1)


@cli.command()
@click.argument("input_jsonl", type=click.Path(exists=True, dir_okay=False))
@click.option("--config", "-c", default=None, help="Configuration file path")
@click.option("--force-rebuild", is_flag=True, help="Re-index unchanged documents")
def index(input_jsonl: str, config: str | None, force_rebuild: bool):
    """Chunk, embed and store every document of a JSONL file."""
    from docpipe.pipeline.chunk import ChunkingStrategy
    from docpipe.pipeline.embed import EmbeddingOrchestrator
    from docpipe.pipeline.index import DocumentIndexer
    from docpipe.pipeline.index_signature import compute_signature
    from docpipe.storage.chunkstore import ChunkStore
    from docpipe.storage.embeddings import create_embedding_service

    try:
        cfg = _load_config(config)
        embedder = create_embedding_service(cfg.embedding)
        embedding_dim = len(embedder.embed_title("test"))

        store = ChunkStore(
            cfg.get_database_url(),
            table_name=cfg.storage.chunks_table,
            embedding_dim=embedding_dim,
        )
        store.initialize()
    except Exception as e:
        click.echo(f"✗ Index setup failed: {e}", err=True)
        raise click.Abort()

    try:
        signature = compute_signature(cfg, embedding_dim)
        stored_signature = store.get_index_signature()
        if stored_signature and stored_signature != signature:
            click.echo("Index configuration changed, rebuilding from scratch")
            store.reset()
            force_rebuild = True
        store.set_index_signature(signature)

        indexer = DocumentIndexer(
            EmbeddingOrchestrator(embedder, ChunkingStrategy(cfg.chunking)),
            store,
        )
        stats = indexer.index_jsonl(input_jsonl, force=force_rebuild)
    finally:
        store.close()

    click.echo(f"✓ Indexed: {stats['indexed']}/{stats['total']} documents")
    click.echo(f"  Skipped: {stats['skipped']}")
    click.echo(f"  Deferred: {stats['deferred']}")
    click.echo(f"  Chunks saved: {stats['chunks_saved']}")
    if stats["errors"]:
        click.echo(f"  Errors: {len(stats['errors'])}")
        for err in stats["errors"][:5]:
            click.echo(f"    - {err['doc_id']}: {err['error']}")


@cli.command()
@click.option("--config", "-c", default="config.example.yaml", help="Configuration file path")
def validate(config: str):
    """Validate configuration file."""
    from docpipe.pipeline.config import Config

    try:
        cfg = Config.from_yaml(config)

        click.echo("✓ Configuration is valid")
        click.echo(f"  Embedding model: {cfg.embedding.model}")
        click.echo(f"  Chunk size: {cfg.chunking.max_chunk_chars} (simple: {cfg.chunking.simple_chunk_chars})")
        click.echo(f"  Patch fallback: {cfg.patch.fallback} (ambiguity: {cfg.patch.ambiguity_policy})")
        click.echo(f"  Chunks table: {cfg.storage.chunks_table}")

    except Exception as e:
        click.echo(f"✗ Configuration error: {e}", err=True)
        raise click.Abort()


def main():
    """CLI entry point."""
    cli()


if __name__ == "__main__":
    main()
