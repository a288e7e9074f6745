"""Fixed SQL used by the aggregation service (SEAD schema).

Every statement takes positional ``%s`` parameters and is executed through
:class:`apps.backend.query_executor.QueryExecutor`.
"""

SITE_BY_ID = "SELECT * FROM tbl_sites WHERE site_id = %s"
ALL_SITE_IDS = "SELECT site_id FROM tbl_sites ORDER BY site_id"

SAMPLE_GROUPS_BY_SITE = "SELECT * FROM tbl_sample_groups WHERE site_id = %s"
SAMPLE_GROUP_DESCRIPTIONS = "SELECT * FROM tbl_sample_group_descriptions WHERE sample_group_id = %s"
PHYSICAL_SAMPLES_BY_GROUP = "SELECT * FROM tbl_physical_samples WHERE sample_group_id = %s"
PHYSICAL_SAMPLE_BY_ID = "SELECT * FROM tbl_physical_samples WHERE physical_sample_id = %s"

ANALYSIS_ENTITIES_BY_SAMPLE = "SELECT * FROM tbl_analysis_entities WHERE physical_sample_id = %s"
ANALYSIS_ENTITIES_BY_DATASET = "SELECT * FROM tbl_analysis_entities WHERE dataset_id = %s"

# qse_sample_features joins tbl_physical_sample_features, tbl_features and
# tbl_feature_types (feature_type_name, feature_name, feature_description, ...).
SAMPLE_FEATURES = "SELECT * FROM postgrest_api.qse_sample_features WHERE physical_sample_id = %s"

DATASET_BY_ID = "SELECT * FROM tbl_datasets WHERE dataset_id = %s"
METHOD_BY_ID = "SELECT * FROM tbl_methods WHERE method_id = %s"
BIBLIO_BY_ID = "SELECT * FROM tbl_biblio WHERE biblio_id = %s"

RELATIVE_DATES_BY_ENTITY = """
SELECT rd.*, ra.relative_age_name, ra.abbreviation, ra.c14_age_older, ra.c14_age_younger,
       ra.cal_age_older, ra.cal_age_younger, ra.description AS relative_age_description
FROM tbl_relative_dates rd
LEFT JOIN tbl_relative_ages ra ON ra.relative_age_id = rd.relative_age_id
WHERE rd.analysis_entity_id = %s
"""

ABUNDANCES_BY_ENTITY = "SELECT * FROM tbl_abundances WHERE analysis_entity_id = %s"
TAXON_BY_ID = "SELECT * FROM tbl_taxa_tree_master WHERE taxon_id = %s"

DENDRO_BY_ENTITY = """
SELECT d.*, dl.name AS dendro_lookup_name, dl.description AS dendro_lookup_description
FROM tbl_dendro d
LEFT JOIN tbl_dendro_lookup dl ON dl.dendro_lookup_id = d.dendro_lookup_id
WHERE d.analysis_entity_id = %s
"""

MEASURED_VALUES_BY_ENTITY = "SELECT * FROM tbl_measured_values WHERE analysis_entity_id = %s"

HEALTH_CHECK = "SELECT 1 AS ok"
