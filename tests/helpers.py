def titles(queryset):
    return sorted(post.title for post in queryset)


def ordered_titles(queryset):
    return [post.title for post in queryset]
