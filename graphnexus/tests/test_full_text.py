from graphnexus.search.full_text import FTS_INDEXES, FullTextSearch


class TestFullTextSearch:
    """Full-text search across the per-table indexes."""

    def test_scores_merge_per_file(self, make_adapter):
        """Hits for the same file from different tables are summed."""
        adapter = make_adapter([
            (r"'File', 'file_fts'", [{"filePath": "src/auth.ts", "score": 0.4}]),
            (r"'Function', 'function_fts'", [
                {"filePath": "src/auth.ts", "score": 0.5},
                {"filePath": "src/user.ts", "score": 0.7},
            ]),
        ])
        results = FullTextSearch(adapter).search("login", limit=10)

        assert [r.file_path for r in results] == ["src/auth.ts", "src/user.ts"]
        assert abs(results[0].score - 0.9) < 1e-9
        assert [r.rank for r in results] == [1, 2]

    def test_failing_table_contributes_nothing(self, make_adapter):
        """A table whose query fails is skipped and the others still count."""
        adapter = make_adapter([
            (r"'Class', 'class_fts'", RuntimeError("index missing")),
            (r"'Method', 'method_fts'", [{"filePath": "src/a.ts", "score": 1.5}]),
        ])
        results = FullTextSearch(adapter).search("run")

        assert len(results) == 1
        assert results[0].file_path == "src/a.ts"
        assert results[0].score == 1.5

    def test_queries_every_index_in_order(self, make_adapter):
        """Each index is queried once, in a fixed order, with a bound query."""
        adapter = make_adapter()
        FullTextSearch(adapter).search("it's \"quoted\"", limit=3)

        assert adapter.extensions == ["fts"]
        assert len(adapter.calls) == len(FTS_INDEXES)
        for call, (table, index_name) in zip(adapter.calls, FTS_INDEXES):
            assert f"'{table}', '{index_name}'" in call["cypher"]
            assert "LIMIT 3" in call["cypher"]
            assert call["params"] == {"query": "it's \"quoted\""}

    def test_limit_truncates(self, make_adapter):
        """Merged results are cut to the limit after sorting."""
        adapter = make_adapter([
            (r"'File', 'file_fts'", [
                {"filePath": f"src/{i}.ts", "score": float(i)} for i in range(5)
            ]),
        ])
        results = FullTextSearch(adapter).search("x", limit=2)
        assert [r.file_path for r in results] == ["src/4.ts", "src/3.ts"]

    def test_create_indexes_tolerates_existing(self, make_adapter):
        """Existing indexes are not counted and do not stop the others."""
        adapter = make_adapter([
            (r"CREATE_FTS_INDEX\('File'", RuntimeError("Index file_fts already exists")),
        ])
        created = FullTextSearch(adapter).create_indexes()

        assert created == len(FTS_INDEXES) - 1
        assert adapter.extensions == ["fts"]
        assert all("stemmer := 'porter'" in call["cypher"] for call in adapter.calls)
