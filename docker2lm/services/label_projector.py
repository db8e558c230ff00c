from typing import Dict, Mapping, Optional


class LabelProjector:
    """Projects runtime labels onto the output label set.

    Only keys present in the rename table are kept; their values are copied
    under the renamed key. Empty values are dropped.
    """

    def __init__(self, label_map: Mapping[str, str]):
        self.label_map = dict(label_map)

    def project(self, labels: Optional[Mapping[str, str]]) -> Dict[str, str]:
        if not labels:
            return {}
        return {
            output_key: labels[source_key]
            for source_key, output_key in self.label_map.items()
            if labels.get(source_key)
        }
