"""
Bundled reference tables.

The CSVs here are an abridged key-age snapshot of the published LMS tables:

- cdc_*: CDC 2000 growth charts (weight, stature and BMI for 24-240 months;
  infant weight, length and head circumference for 0-36 months) at yearly and
  early-infancy ages.
- who_*: WHO Child Growth Standards 2006 (weight, length and head circumference
  for 0-24 months), monthly to 12 months then quarterly.

Full tables, WHO BMI-for-age and INTERGROWTH-21st newborn tables are not shipped.
Run scripts/download_data.py, or point PEDCALC_DATA_DIR at a directory of CSVs
in the same schema, to use them.
"""
