"""JSON Schema classes that validate documents and serialise themselves."""