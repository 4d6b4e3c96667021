from sparse_retrieval.chunking import Chunker
from sparse_retrieval.embeddings import BagOfWordsEmbedder, TfEmbedder
from sparse_retrieval.normalization import normalize
from sparse_retrieval.schema import ChunkStrategy
from sparse_retrieval.vector_store import VectorIndex

SAMPLE_TEXT = """Remote work is allowed from home.

VPN is required on public networks.

Lost devices must be reported within one hour."""


if __name__ == "__main__":
    text = normalize(SAMPLE_TEXT)
    structured = Chunker(ChunkStrategy.STRUCTURED).chunk("DOC-1", text)
    fixed = Chunker(ChunkStrategy.FIXED, max_tokens=6, overlap=2).chunk("DOC-1", text)
    embedder = TfEmbedder()
    index = VectorIndex()
    for chunk in structured:
        index.add_chunk(chunk.id, chunk.doc_id, embedder.embed(chunk.text))
    print(
        {
            "structured_chunks": len(structured),
            "fixed_chunks": len(fixed),
            "bow_terms": len(BagOfWordsEmbedder().embed(text)),
            "vpn_matches": len(index.search(embedder.embed("vpn"), top_k=3)),
        }
    )
