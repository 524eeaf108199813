"""Turns schema and relationship discovery into a suggested indexing profile.

The analyzer never writes anything; saving the suggested profile and its
relationship watchers is left to the generation step (IndexingService).
"""

import re

from shared.clients.records.RecordStoreInterface import RecordStoreInterface
from shared.errors import NotIndexableError, UnknownTypeError
from shared.helper.HelperConfig import HelperConfig
from shared.models.analysis import (
    Analysis,
    FieldClass,
    Recommendation,
    RecommendationLevel,
    RelationshipAnalysis,
)
from shared.models.profile import (
    DEEP_WEIGHT,
    DEPTH_ONE_WEIGHT,
    FieldConfig,
    IndexingProfile,
    ProfileOptions,
    RelationshipConfig,
    RelationshipWatcher,
)
from services.vector_index.RelationshipGraphBuilder import RelationshipGraphBuilder
from services.vector_index.SchemaInspector import SchemaInspector

# relationships deeper than this are suggested disabled
SUGGESTED_ENABLED_DEPTH = 2
MANY_RELATIONSHIPS = 10
OVERLAP_RATIO = 0.2

ICONS = {
    RecommendationLevel.SUCCESS: "✓",
    RecommendationLevel.WARNING: "⚠",
    RecommendationLevel.INFO: "ℹ",
}


class ModelAnalyzer:
    def __init__(
        self,
        helper_config: HelperConfig,
        record_store: RecordStoreInterface,
        inspector: SchemaInspector | None = None,
        graph_builder: RelationshipGraphBuilder | None = None,
    ):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self._record_store = record_store
        self._inspector = inspector or SchemaInspector(record_store)
        self._graph_builder = graph_builder or RelationshipGraphBuilder(helper_config, record_store, self._inspector)

    ##########################################
    ############### ANALYSIS #################
    ##########################################

    def analyze(self, record_type: str, max_depth: int = 3) -> Analysis:
        """Analyse a record type and suggest an indexing profile for it.

        Args:
            record_type (str): The record type to analyse.
            max_depth (int): Maximum number of relationship hops to follow.

        Returns:
            Analysis: Field classification, relationships, recommendations and the suggested profile.

        Raises:
            UnknownTypeError: If the record type is not in the descriptor table.
        """
        descriptor = self._record_store.describe(record_type)
        field_analysis = self._inspector.inspect(record_type)
        text_fields = {
            name: analysis for name, analysis in field_analysis.items()
            if analysis.classification == FieldClass.TEXT
        }
        metadata_fields = self._inspector.identify_metadata_fields(record_type, list(text_fields))
        filters = self._inspector.suggest_filters(record_type)
        relationships = self._graph_builder.analyze(record_type, max_depth)

        analysis = Analysis(
            record_type=record_type,
            total_fields=len(descriptor.fields),
            fields=[field.name for field in descriptor.fields],
            text_fields=text_fields,
            metadata_fields=metadata_fields,
            filters=filters,
            relationships=relationships,
            recommendations=self._recommendations(text_fields, relationships),
        )
        analysis.suggested_profile = self._suggest_profile(analysis, max_depth)
        self.logging.info(
            "Analysed '%s': %d text fields, %d metadata fields, %d relationships",
            record_type, len(text_fields), len(metadata_fields), len(relationships.relationships),
        )
        return analysis

    def is_suitable(self, record_type: str) -> bool:
        """Quick check: does the type have at least one text field of its own?"""
        try:
            return bool(self._inspector.text_fields(record_type))
        except UnknownTypeError:
            return False

    def require_indexable(self, record_type: str) -> None:
        """Raises UnknownTypeError or NotIndexableError if the type can not be indexed."""
        if not self._inspector.text_fields(record_type):
            raise NotIndexableError(record_type)

    ##########################################
    ############ RECOMMENDATIONS #############
    ##########################################

    def _recommendations(self, text_fields: dict, relationships: RelationshipAnalysis) -> list[Recommendation]:
        recommendations = []
        if not text_fields:
            recommendations.append(Recommendation(
                level=RecommendationLevel.WARNING,
                message="No text fields found. This record type may not be suitable for vector indexing.",
            ))
        elif len(text_fields) == 1:
            recommendations.append(Recommendation(
                level=RecommendationLevel.INFO,
                message="Only one text field found. Consider if related records should be included.",
            ))
        else:
            recommendations.append(Recommendation(
                level=RecommendationLevel.SUCCESS,
                message=f"{len(text_fields)} text fields found suitable for embedding.",
            ))

        count = len(relationships.relationships)
        if count > 0:
            recommendations.append(Recommendation(
                level=RecommendationLevel.SUCCESS,
                message=f"Found {count} relationships that can be watched for changes.",
            ))
            if count > MANY_RELATIONSHIPS:
                recommendations.append(Recommendation(
                    level=RecommendationLevel.WARNING,
                    message="Many relationships detected. Consider limiting depth to improve performance.",
                ))

        chunked = [name for name, field in text_fields.items() if field.chunk]
        if chunked:
            recommendations.append(Recommendation(
                level=RecommendationLevel.INFO,
                message=f"{len(chunked)} fields will be chunked for better embedding quality.",
            ))
        return recommendations

    ##########################################
    ########### PROFILE GENERATION ###########
    ##########################################

    @staticmethod
    def collection_name_for(record_type: str) -> str:
        name = re.sub(r"[^a-z0-9_]", "_", record_type.lower())
        return f"{name}_vectors"

    def _profile_options(self) -> ProfileOptions:
        model = self.helper_config.get_string_val("EMBED_MODEL", default="")
        dimensions = int(self.helper_config.get_number_val("EMBED_DIMENSIONS", default=0))
        batch_size = int(self.helper_config.get_number_val("EMBED_BATCH_SIZE", default=100))
        return ProfileOptions(
            embedding_model=model or None,
            embedding_dimensions=dimensions or None,
            batch_size=batch_size,
        )

    def _suggest_profile(self, analysis: Analysis, max_depth: int) -> IndexingProfile:
        fields = {}
        for name, field in analysis.text_fields.items():
            if field.chunk:
                fields[name] = FieldConfig(
                    weight=field.weight,
                    chunk=True,
                    chunk_size=field.chunk_size,
                    chunk_overlap=int(field.chunk_size * OVERLAP_RATIO),
                )
            else:
                fields[name] = FieldConfig(weight=field.weight)

        relationships = {
            path: RelationshipConfig(
                related_type=rel.related_type,
                kind=rel.kind,
                depth=rel.depth,
                fields=rel.fields,
                weight=DEPTH_ONE_WEIGHT if rel.depth == 1 else DEEP_WEIGHT,
                enabled=rel.depth <= SUGGESTED_ENABLED_DEPTH,
            )
            for path, rel in analysis.relationships.relationships.items()
        }

        return IndexingProfile(
            record_type=analysis.record_type,
            collection_name=self.collection_name_for(analysis.record_type),
            fields=fields,
            metadata_fields=analysis.metadata_fields,
            filters=analysis.filters,
            relationships=relationships,
            eager_load_map=analysis.relationships.eager_load_map,
            max_relationship_depth=max_depth,
            options=self._profile_options(),
        )

    def build_watchers(self, profile: IndexingProfile) -> list[RelationshipWatcher]:
        """One watcher per relationship path of the profile; disabled paths yield disabled watchers.

        The parent type is always the profile's record type, since that is the
        record re-indexed when anything along the path changes.
        """
        watchers = []
        for path, rel in profile.relationships.items():
            watchers.append(RelationshipWatcher(
                profile_id=profile.id,
                parent_type=profile.record_type,
                related_type=rel.related_type,
                kind=rel.kind,
                path=path,
                depth=rel.depth,
                watch_fields=rel.fields,
                enabled=rel.enabled,
            ))
        return watchers

    ##########################################
    ################ SUMMARY #################
    ##########################################

    def summary(self, analysis: Analysis) -> str:
        lines = [
            f"Analysis Summary for {analysis.record_type}",
            "=" * 60,
            "",
            f"Total Fields: {analysis.total_fields}",
            f"Text Fields: {len(analysis.text_fields)}",
            f"Metadata Fields: {len(analysis.metadata_fields)}",
            f"Relationships: {len(analysis.relationships.relationships)}",
            f"Eager Load Paths: {len(analysis.relationships.eager_load_map)}",
            "",
            "Recommendations:",
        ]
        for rec in analysis.recommendations:
            lines.append(f"  {ICONS.get(rec.level, '•')} {rec.message}")
        return "\n".join(lines) + "\n"
